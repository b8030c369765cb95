"""Payment provider integration: gateway, webhook ingress and idempotency ledger."""
