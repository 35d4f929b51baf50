"""
Input validation utilities for uploads and identifiers.
"""
import os
import re
from pathlib import Path
from typing import Iterable, Optional, Tuple

MATRIC_NO_PATTERN = re.compile(r"^[A-Za-z0-9/\-]{3,50}$")
DEPARTMENT_CODE_PATTERN = re.compile(r"^[A-Z0-9]{2,10}$")


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename to prevent path traversal attacks.

    Args:
        filename: Original filename

    Returns:
        Sanitized filename safe for use
    """
    if not filename:
        raise ValueError("Filename cannot be empty")

    filename = os.path.basename(filename.replace("\\", "/"))

    safe_chars = []
    for char in filename:
        if char.isalnum() or char in "._-":
            safe_chars.append(char)
        else:
            safe_chars.append("_")

    sanitized = "".join(safe_chars).lstrip(".")

    if len(sanitized) > 255:
        sanitized = sanitized[:255]

    if not sanitized:
        raise ValueError("Filename became empty after sanitization")

    return sanitized


def file_extension(filename: str) -> str:
    """Lower-cased extension without the leading dot ("" when missing)."""
    if not filename:
        return ""
    return Path(filename).suffix.lower().lstrip(".")


def validate_document_extension(filename: str, allowed_extensions: Iterable[str]) -> bool:
    """
    Validate file extension.

    Args:
        filename: Filename to check
        allowed_extensions: Allowed extensions without dots (e.g., {"pdf", "docx"})

    Returns:
        True if extension is allowed
    """
    ext = file_extension(filename)
    if not ext:
        return False
    return ext in {e.lower().lstrip(".") for e in allowed_extensions}


def validate_file_size(file_size: int, max_size_bytes: int) -> Tuple[bool, Optional[str]]:
    """
    Validate file size.

    Args:
        file_size: File size in bytes
        max_size_bytes: Maximum allowed size in bytes

    Returns:
        Tuple of (is_valid, error_message)
    """
    if file_size <= 0:
        return False, "File size must be greater than 0"

    if file_size > max_size_bytes:
        max_size_mb = max_size_bytes / (1024 * 1024)
        actual_size_mb = file_size / (1024 * 1024)
        return False, f"File too large: {actual_size_mb:.2f}MB (max: {max_size_mb:.2f}MB)"

    return True, None


def normalize_code(code: str) -> str:
    """Department and requirement codes are stored upper-case without surrounding spaces."""
    return (code or "").strip().upper()


def validate_matric_no(matric_no: str) -> bool:
    """Matriculation numbers: letters, digits, slashes and dashes."""
    return bool(matric_no and MATRIC_NO_PATTERN.match(matric_no.strip()))
