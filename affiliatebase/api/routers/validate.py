"""Live URL validation for the submission form."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from affiliatebase.api.deps import get_reachability
from affiliatebase.core.logging import get_logger
from affiliatebase.validation.network import ReachabilityChecker
from affiliatebase.validation.schemas import ValidateUrlRequest
from affiliatebase.validation.urls import UrlValidationError, clean_and_validate_url

logger = get_logger(__name__)

router = APIRouter(prefix="/api/validate-url", tags=["validation"])


@router.post("")
async def validate_url(body: ValidateUrlRequest, checker: ReachabilityChecker = Depends(get_reachability)):
    """
    Clean a URL, apply the referral/shortener rules, then request it.

    Format rules run first so rejected links are never fetched.
    """
    if not body.url or not body.url.strip():
        return JSONResponse(status_code=400, content={"isValid": False, "error": "URL is required"})

    try:
        cleaned = clean_and_validate_url(body.url)
    except UrlValidationError as e:
        return {"isValid": False, "error": str(e)}

    result = await checker.check(cleaned, body.context)
    if not result.reachable:
        return {"isValid": False, "error": result.error or "URL is unreachable"}

    return {"isValid": True, "cleanedUrl": cleaned}
