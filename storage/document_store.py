"""
Document file storage: S3 when configured, the local uploads directory otherwise.
"""
import shutil
import uuid
from pathlib import Path
from typing import BinaryIO, Optional

from core.logger import logger
import config

S3_PREFIX = "s3://"


def document_key(student_id: int, requirement_id: int, filename: str) -> str:
    """Object key: documents/student_<id>/requirement_<id>/<uuid>_<filename>."""
    return (
        f"{config.S3_DOCUMENTS_PREFIX}/student_{student_id}/requirement_{requirement_id}/"
        f"{uuid.uuid4().hex}_{filename}"
    )


def save_document(
    file_obj: BinaryIO,
    student_id: int,
    requirement_id: int,
    filename: str,
    content_type: Optional[str] = None,
) -> str:
    """
    Store an uploaded file.

    Args:
        file_obj: Readable file positioned at the start
        student_id: Owner of the document
        requirement_id: Requirement the document satisfies
        filename: Sanitized filename
        content_type: MIME type reported by the client

    Returns:
        Storage path (s3://bucket/key or a local filesystem path)
    """
    key = document_key(student_id, requirement_id, filename)
    if config.s3_client:
        return config.s3_client.upload_fileobj(
            file_obj,
            key,
            content_type=content_type,
            metadata={"student_id": student_id, "requirement_id": requirement_id},
        )

    local_path = Path(config.UPLOADS_DIR) / key
    local_path.parent.mkdir(parents=True, exist_ok=True)
    with open(local_path, "wb") as buffer:
        shutil.copyfileobj(file_obj, buffer)
    logger.info(f"Saved document locally: {local_path}")
    return str(local_path)


def is_s3_path(storage_path: str) -> bool:
    return storage_path.startswith(S3_PREFIX)


def local_document_path(storage_path: str) -> Optional[Path]:
    """Filesystem path for locally stored documents (None for S3 or missing files)."""
    if is_s3_path(storage_path):
        return None
    path = Path(storage_path)
    return path if path.is_file() else None


def presigned_document_url(storage_path: str) -> Optional[str]:
    if not is_s3_path(storage_path) or not config.s3_client:
        return None
    return config.s3_client.get_presigned_url(storage_path, expiration=config.S3_PRESIGNED_EXPIRY_SECONDS)


def delete_document_file(storage_path: str) -> bool:
    """
    Remove a stored file. Failures are logged and reported as False; the
    database row is the source of truth.
    """
    try:
        if is_s3_path(storage_path):
            if not config.s3_client:
                logger.warning(f"S3 disabled, cannot delete {storage_path}")
                return False
            return config.s3_client.delete_file(storage_path)
        path = Path(storage_path)
        if path.exists():
            path.unlink()
        return True
    except Exception as e:
        logger.error(f"Failed to delete stored document {storage_path}: {e}", exc_info=True)
        return False
