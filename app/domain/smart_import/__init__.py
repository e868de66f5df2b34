"""Smart import: analyse a spreadsheet, PDF or image and import its rows."""

from .errors import SmartImportError
from .schemas import FileAnalysis, ImportResult, ImportTarget, PreparedImportData

__all__ = [
    "FileAnalysis",
    "ImportResult",
    "ImportTarget",
    "PreparedImportData",
    "SmartImportError",
]
