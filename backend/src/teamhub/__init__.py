"""TeamHub - team subscription entitlements.

Creates a team when the payment provider confirms a subscription, keeps every
member's access in step with the subscription status, and manages the invitation
tokens owners use to add members.
"""

__version__ = "1.0.0"
