"""Webhook endpoints for external services."""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from teamhub.api.dependencies import Services, get_services
from teamhub.errors import EventInProgressError
from teamhub.logging_config import get_logger
from teamhub.payments.stripe_service import WebhookVerificationError

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(request: Request, services: Services = Depends(get_services)):
    """Handle Stripe webhook events.

    Verifies the signature over the raw body, then processes the event once.
    Failures answer with a bare HTTP status so Stripe redelivers.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        return await services.ingress.handle(payload, sig_header)
    except WebhookVerificationError as e:
        logger.warning("stripe_webhook_invalid", error=e.message)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message,
        )
    except EventInProgressError as e:
        logger.info("stripe_webhook_in_progress", error=e.message)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=e.message,
        )
    except Exception as e:
        logger.exception("stripe_webhook_error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error processing webhook",
        )
