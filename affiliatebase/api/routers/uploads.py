"""Program logo uploads."""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from minio.error import S3Error
from sqlalchemy.ext.asyncio import AsyncSession
from urllib3.exceptions import HTTPError

from affiliatebase.api.deps import get_storage, require_admin
from affiliatebase.core.db import get_db
from affiliatebase.core.logging import get_logger
from affiliatebase.core.repositories import get_program, update_program
from affiliatebase.services.storage import LogoStorage, LogoValidationError, validate_logo

logger = get_logger(__name__)

router = APIRouter(prefix="/api/upload", tags=["uploads"])


@router.post("/avatar")
async def upload_avatar(
    request: Request,
    file: Optional[UploadFile] = File(default=None),
    program_id: Optional[str] = Form(default=None, alias="programId"),
    session: AsyncSession = Depends(get_db),
    storage: LogoStorage = Depends(get_storage),
):
    """
    Store a logo and return its public URL.

    Anyone may upload while filling the submission form. Passing ``programId``
    replaces that program's logo and requires an admin session.
    """
    if file is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file provided")

    program = None
    if program_id:
        require_admin(request)
        program = await get_program(session, program_id)
        if program is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Program not found")

    data = await file.read(storage.max_bytes + 1)
    try:
        validate_logo(file.content_type, len(data), storage.max_bytes)
        url = await storage.upload_logo(data, file.content_type)
    except LogoValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except (S3Error, HTTPError) as e:
        logger.error(f"Logo upload failed: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to upload file")

    if program is not None:
        old_logo = program.logo_url
        await update_program(session, program, {"logo_url": url})
        if old_logo and old_logo != url:
            await storage.delete_logo(old_logo)

    return {"url": url}
