"""Classify uploads by extension first, then by declared MIME type."""
from __future__ import annotations

from typing import Optional

from app.domain.smart_import.schemas import FileType

EXTENSION_TYPES: tuple[tuple[str, FileType], ...] = (
    (".pdf", FileType.PDF),
    (".xlsx", FileType.XLSX),
    (".xls", FileType.XLS),
    (".csv", FileType.CSV),
    (".png", FileType.IMAGE),
    (".jpg", FileType.IMAGE),
    (".jpeg", FileType.IMAGE),
    (".webp", FileType.IMAGE),
    (".gif", FileType.IMAGE),
)

IMAGE_MIME_TYPES = {"image/png", "image/jpeg", "image/jpg", "image/webp", "image/gif"}

SUPPORTED_FORMATS_MESSAGE = "Tipo de arquivo nao suportado. Use PDF, XLSX, XLS, CSV ou imagem (PNG, JPG)."


def _type_from_mime(content_type: str) -> Optional[FileType]:
    if content_type == "application/pdf":
        return FileType.PDF
    if "spreadsheetml" in content_type:
        return FileType.XLSX
    if "ms-excel" in content_type:
        return FileType.XLS
    if content_type in {"text/csv", "application/csv"}:
        return FileType.CSV
    if content_type in IMAGE_MIME_TYPES:
        return FileType.IMAGE
    return None


def detect_file_type(filename: Optional[str], content_type: Optional[str] = None) -> Optional[FileType]:
    """Return the file type, or None when the upload is not supported."""
    name = (filename or "").strip().lower()
    for extension, file_type in EXTENSION_TYPES:
        if name.endswith(extension):
            return file_type

    mime = (content_type or "").split(";", 1)[0].strip().lower()
    return _type_from_mime(mime)


def image_mime_type(filename: Optional[str], content_type: Optional[str] = None) -> str:
    """Best MIME type to send to the vision service for an image upload."""
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    if mime in IMAGE_MIME_TYPES:
        return "image/jpeg" if mime == "image/jpg" else mime

    name = (filename or "").lower()
    if name.endswith((".jpg", ".jpeg")):
        return "image/jpeg"
    if name.endswith(".webp"):
        return "image/webp"
    if name.endswith(".gif"):
        return "image/gif"
    return "image/png"
