"""Stripe checkout and webhook handling for featured listings."""

import json
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

import stripe
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from affiliatebase.core.logging import get_logger
from affiliatebase.core.models import Program
from affiliatebase.core.repositories import (
    apply_featuring, get_program, get_program_by_checkout,
)
from affiliatebase.core.settings import Settings
from affiliatebase.core.time import utc_now
from affiliatebase.ranking.pipeline import DEFAULT_WINDOW_DAYS, recompute_program_score
from affiliatebase.ranking.score import DEFAULT_WEIGHTS, ScoreWeights

logger = get_logger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
SIGNATURE_TOLERANCE_SECONDS = 300
METADATA_VALUE_LIMIT = 500

# Metadata key set when programId points at an unpaid hidden draft
DRAFT_FLAG = "draft"


class PaymentConfigurationError(RuntimeError):
    """Stripe keys or price are missing."""


class InvalidWebhookError(ValueError):
    """Signature or payload could not be verified."""


class StripeGateway:
    """Thin wrapper over the Stripe SDK, built once per process."""

    def __init__(self, secret_key: Optional[str], webhook_secret: Optional[str],
                 price_id: Optional[str], site_url: str):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.price_id = price_id
        self.site_url = site_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeGateway":
        return cls(
            settings.stripe_secret_key,
            settings.stripe_webhook_secret,
            settings.stripe_featured_price_id,
            settings.site_url,
        )

    def verify_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify the ``stripe-signature`` header and decode the event.

        Args:
            payload: Raw request body
            signature: Value of the stripe-signature header

        Returns:
            Event as a plain dict

        Raises:
            InvalidWebhookError: missing secret, bad signature or malformed body
        """
        if not self.webhook_secret:
            raise InvalidWebhookError("Webhook secret is not configured")
        if not signature:
            raise InvalidWebhookError("Missing stripe-signature header")

        body = payload.decode("utf-8")
        try:
            stripe.WebhookSignature.verify_header(
                body, signature, self.webhook_secret, SIGNATURE_TOLERANCE_SECONDS
            )
        except stripe.SignatureVerificationError as e:
            raise InvalidWebhookError(f"Invalid signature: {e}") from e

        try:
            event = json.loads(body)
        except ValueError as e:
            raise InvalidWebhookError("Invalid payload") from e

        if not isinstance(event, dict) or "type" not in event:
            raise InvalidWebhookError("Invalid payload")
        return event

    def _create_session(self, metadata: Dict[str, str]) -> Any:
        return stripe.checkout.Session.create(
            api_key=self.secret_key,
            mode="payment",
            line_items=[{"price": self.price_id, "quantity": 1}],
            success_url=f"{self.site_url}/advertise/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{self.site_url}/advertise/cancel",
            metadata=metadata,
        )

    async def create_checkout_session(self, metadata: Dict[str, str]) -> Tuple[str, str]:
        """
        Start a hosted checkout for one featured slot.

        Args:
            metadata: programId (and the draft flag), echoed back on the webhook

        Returns:
            (session id, checkout URL)
        """
        if not self.secret_key or not self.price_id:
            raise PaymentConfigurationError("Stripe is not configured")

        for key, value in metadata.items():
            if len(value) > METADATA_VALUE_LIMIT:
                raise ValueError(f"Checkout metadata '{key}' is too long")

        checkout = await run_in_threadpool(self._create_session, metadata)
        logger.info(f"Created checkout session {checkout.id}", extra={"metadata_keys": sorted(metadata)})
        return checkout.id, checkout.url


async def handle_checkout_completed(session: AsyncSession, checkout: Dict[str, Any],
                                    featured_days: int = 30,
                                    now: Optional[datetime] = None,
                                    weights: ScoreWeights = DEFAULT_WEIGHTS,
                                    window_days: int = DEFAULT_WINDOW_DAYS) -> Optional[Program]:
    """
    Feature the program a paid checkout was for.

    Checkouts for new listings reference a hidden draft created before
    payment; the draft is published here. The trending score is recomputed
    so the program ranks by its current counts right away. Re-delivery of an
    already processed checkout session changes nothing.

    Args:
        session: Database session
        checkout: The checkout session object from the event
        featured_days: Length of the featured window
        now: Processing time; the window starts here
        weights: Scoring constants for the recompute
        window_days: Rolling window for the recompute

    Returns:
        The featured Program, or None when there was nothing to feature
    """
    if checkout.get("payment_status") != "paid":
        logger.info(f"Ignoring unpaid checkout {checkout.get('id')}")
        return None

    checkout_id = checkout.get("id")
    if checkout_id:
        already = await get_program_by_checkout(session, checkout_id)
        if already is not None:
            logger.info(f"Checkout {checkout_id} already processed", extra={"program_id": already.id})
            return already

    metadata = checkout.get("metadata") or {}
    program_id = metadata.get("programId")
    if not program_id:
        logger.warning(f"Paid checkout {checkout_id} has no program metadata")
        return None

    program = await get_program(session, program_id)
    if program is None:
        logger.error(f"Paid checkout {checkout_id} references unknown program {program_id}")
        return None

    now = now or utc_now()
    is_draft = metadata.get(DRAFT_FLAG) == "true"
    try:
        program = await apply_featuring(
            session, program, checkout_id, now + timedelta(days=featured_days), approve=is_draft
        )
    except IntegrityError:
        # Concurrent delivery of the same checkout won the race
        await session.rollback()
        logger.info(f"Checkout {checkout_id} processed concurrently")
        return await get_program_by_checkout(session, checkout_id) if checkout_id else None

    if is_draft:
        logger.info(f"Published draft program {program.id} from checkout {checkout_id}")
    await recompute_program_score(session, program, weights=weights, window_days=window_days, now=now)
    return program
