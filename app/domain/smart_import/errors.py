"""Typed failures raised by the smart import pipeline."""
from __future__ import annotations

from typing import Any, Iterable, Optional

from fastapi import HTTPException, status


class SmartImportError(HTTPException):
    """Base failure for a pipeline stage, serialised as the HTTP detail."""

    default_status = status.HTTP_400_BAD_REQUEST
    default_code = "import_error"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        observations: Iterable[str] = (),
        extra: Optional[dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.code = code or self.default_code
        self.message = message
        self.observations = list(observations)
        detail: dict[str, Any] = {
            "code": self.code,
            "message": message,
            "observations": self.observations,
        }
        if extra:
            detail.update(extra)
        super().__init__(status_code=status_code or self.default_status, detail=detail)

    def __str__(self) -> str:
        return self.message


class UnsupportedFileError(SmartImportError):
    default_code = "unsupported_file"


class FileTooLargeError(SmartImportError):
    default_status = status.HTTP_413_CONTENT_TOO_LARGE
    default_code = "file_too_large"


class ExtractionError(SmartImportError):
    """The file was recognised but no usable table could be recovered."""

    default_status = status.HTTP_422_UNPROCESSABLE_CONTENT
    default_code = "no_usable_data"


class MappingValidationError(SmartImportError):
    default_status = status.HTTP_422_UNPROCESSABLE_CONTENT
    default_code = "invalid_mapping"


class DestinationConfigError(SmartImportError):
    default_status = status.HTTP_422_UNPROCESSABLE_CONTENT
    default_code = "invalid_destination"


class WizardStateError(SmartImportError):
    default_status = status.HTTP_409_CONFLICT
    default_code = "invalid_state"


__all__ = [
    "DestinationConfigError",
    "ExtractionError",
    "FileTooLargeError",
    "MappingValidationError",
    "SmartImportError",
    "UnsupportedFileError",
    "WizardStateError",
]
