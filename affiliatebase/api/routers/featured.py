"""Featured slot availability and paid checkout."""

from typing import Optional

import stripe
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from affiliatebase.api.deps import get_app_settings, get_payments
from affiliatebase.core.db import get_db
from affiliatebase.core.logging import get_logger
from affiliatebase.core.repositories import (
    DUPLICATE_MESSAGES, count_active_featured, create_program, delete_program, find_conflicting_field,
    get_program, next_featured_expiry,
)
from affiliatebase.core.settings import Settings
from affiliatebase.core.time import isoformat, utc_now
from affiliatebase.services.payments import DRAFT_FLAG, PaymentConfigurationError, StripeGateway
from affiliatebase.validation.schemas import CheckoutRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/api/featured", tags=["featured"])


async def _availability(session: AsyncSession, max_slots: int) -> dict:
    now = utc_now()
    count = await count_active_featured(session, now)
    is_full = count >= max_slots
    next_available = await next_featured_expiry(session, now) if is_full else None
    return {
        "count": count,
        "max": max_slots,
        "isFull": is_full,
        "nextAvailable": isoformat(next_available),
    }


async def _discard_draft(session: AsyncSession, draft_id: Optional[str]) -> None:
    if draft_id:
        await delete_program(session, draft_id)
        logger.info(f"Discarded checkout draft {draft_id}")


@router.get("/availability")
async def availability(session: AsyncSession = Depends(get_db), settings: Settings = Depends(get_app_settings)):
    """How many featured slots are taken and when the next one frees up."""
    return await _availability(session, settings.featured_max_slots)


@router.post("/checkout")
async def checkout(
    body: CheckoutRequest,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    payments: StripeGateway = Depends(get_payments),
):
    """
    Start a payment for a featured slot on an existing or new program.

    A new program is saved first as a hidden draft and only its id travels
    in the checkout metadata; the webhook publishes it once paid. The draft
    is removed again when the checkout cannot be created.
    """
    if bool(body.programId) == (body.programData is not None):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail="Provide exactly one of programId or programData")

    slots = await _availability(session, settings.featured_max_slots)
    if slots["isFull"]:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="All featured slots are taken")

    draft_id = None
    if body.programId:
        if await get_program(session, body.programId) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Program not found")
        metadata = {"programId": body.programId}
    else:
        columns = body.programData.to_columns()
        conflict = await find_conflicting_field(session, columns)
        if conflict:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_MESSAGES[conflict])
        draft = await create_program(session, {**columns, "approval_status": False})
        draft_id = draft.id
        metadata = {"programId": draft_id, DRAFT_FLAG: "true"}

    try:
        session_id, url = await payments.create_checkout_session(metadata)
    except PaymentConfigurationError as e:
        logger.error(f"Checkout unavailable: {e}")
        await _discard_draft(session, draft_id)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Payments are not configured")
    except ValueError as e:
        await _discard_draft(session, draft_id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except stripe.StripeError as e:
        logger.error(f"Stripe checkout failed: {e}", exc_info=True)
        await _discard_draft(session, draft_id)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Payment provider error")

    return {"sessionId": session_id, "url": url}
