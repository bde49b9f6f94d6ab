"""Payment provider webhooks."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from affiliatebase.api.deps import get_app_settings, get_payments
from affiliatebase.core.db import get_db
from affiliatebase.core.logging import get_logger
from affiliatebase.core.settings import Settings
from affiliatebase.ranking.pipeline import job_options
from affiliatebase.services.payments import (
    CHECKOUT_COMPLETED, InvalidWebhookError, StripeGateway, handle_checkout_completed,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    payments: StripeGateway = Depends(get_payments),
):
    """
    Receive Stripe events. Only paid checkout completions change state;
    everything else is acknowledged and ignored.
    """
    payload = await request.body()

    try:
        event = payments.verify_event(payload, request.headers.get("stripe-signature"))
    except InvalidWebhookError as e:
        logger.warning(f"Rejected webhook: {e}")
        return JSONResponse(status_code=400, content={"error": "Invalid signature"})

    if event["type"] != CHECKOUT_COMPLETED:
        logger.debug(f"Ignoring webhook event {event['type']}")
        return {"received": True}

    checkout = (event.get("data") or {}).get("object") or {}
    try:
        options = job_options(settings)
        await handle_checkout_completed(
            session,
            checkout,
            featured_days=settings.featured_days,
            weights=options["weights"],
            window_days=options["window_days"],
        )
    except SQLAlchemyError as e:
        # non-2xx makes Stripe redeliver
        logger.error(f"Failed to activate featured listing: {e}", exc_info=True,
                     extra={"event_id": event.get("id")})
        return JSONResponse(status_code=500, content={"error": "Database error"})

    return {"received": True}
