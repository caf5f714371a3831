"""Validation of PDF attachments uploaded with a concept paper.

Files are held in memory only long enough to be forwarded to Zoho Creator.
"""

import logging

from fastapi import HTTPException, UploadFile, status

from gap_portal.services.submission_service import AttachmentFile

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024  # 10 MB

ALLOWED_EXTENSIONS: set[str] = {"pdf"}
ALLOWED_MIME_TYPES: set[str] = {"application/pdf"}

ONLY_PDF_MESSAGE = "Only PDF files are allowed"


async def read_pdf_upload(file: UploadFile, field_name: str) -> AttachmentFile:
    """Validate an uploaded PDF and load its content.

    Args:
        file: The uploaded file.
        field_name: Zoho file-upload field the PDF is destined for.

    Returns:
        AttachmentFile ready to be uploaded.

    Raises:
        HTTPException 400: Not a PDF, or empty.
        HTTPException 413: File exceeds the 10 MB limit.
    """
    original_filename = file.filename or "unnamed_file.pdf"

    ext = (
        original_filename.rsplit(".", 1)[-1].lower() if "." in original_filename else ""
    )
    content_type = (file.content_type or "").lower()
    if ext not in ALLOWED_EXTENSIONS or content_type not in ALLOWED_MIME_TYPES:
        logger.warning(
            "Rejected upload %s for %s (type %r)",
            original_filename,
            field_name,
            content_type,
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ONLY_PDF_MESSAGE,
        )

    data = await file.read()
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded file is empty.",
        )
    if len(data) > MAX_FILE_SIZE_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=(
                f"File size ({len(data):,} bytes) exceeds the "
                f"{MAX_FILE_SIZE_BYTES // (1024 * 1024)} MB limit."
            ),
        )

    return AttachmentFile(
        field_name=field_name,
        filename=original_filename,
        content=data,
        content_type=content_type,
    )
