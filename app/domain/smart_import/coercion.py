"""Value coercion shared by column analysis and row preparation."""
from __future__ import annotations

import math
import re
import unicodedata
from datetime import date, datetime, timedelta
from typing import Any, Optional

from app.domain.smart_import.schemas import TransactionType

EXCEL_EPOCH = date(1899, 12, 30)
EXCEL_SERIAL_MIN = 25000
EXCEL_SERIAL_MAX = 50000

MONTH_ABBREVIATIONS = {
    "jan": 1,
    "fev": 2,
    "mar": 3,
    "abr": 4,
    "mai": 5,
    "jun": 6,
    "jul": 7,
    "ago": 8,
    "set": 9,
    "out": 10,
    "nov": 11,
    "dez": 12,
}

ISO_DATE_RE = re.compile(r"^\s*(\d{4})[/-](\d{1,2})[/-](\d{1,2})(?!\d)")
BR_DATE_RE = re.compile(r"^\s*(\d{1,2})[/-](\d{1,2})[/-](\d{4}|\d{2})(?!\d)")
MONTH_NAME_DATE_RE = re.compile(
    r"^\s*(\d{1,2})\s+(?:de\s+)?(jan|fev|mar|abr|mai|jun|jul|ago|set|out|nov|dez)[a-zç]*\.?(?:\s+(?:de\s+)?(\d{4}))?",
    re.IGNORECASE,
)
NUMBER_RE = re.compile(r"^\d+(\.\d+)?$")
THOUSANDS_DOT_RE = re.compile(r"^[1-9]\d{0,2}\.\d{3}$")

FALLBACK_DATE_FORMATS = (
    "%d.%m.%Y",
    "%Y%m%d",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
)

RECEITA_KEYWORDS = ("receita", "entrada", "credito")
# "cartao de credito" is an expense; card routing comes from the destination
CARTAO_KEYWORDS = ("cartao",)


def normalize_key(value: Any) -> str:
    """Lowercase, strip accents and drop every non-alphanumeric character."""
    normalized = unicodedata.normalize("NFKD", str(value))
    normalized = normalized.encode("ASCII", "ignore").decode("ASCII")
    return re.sub(r"[^a-z0-9]", "", normalized.lower())


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value.strip() == ""


def is_excel_serial(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return EXCEL_SERIAL_MIN < value < EXCEL_SERIAL_MAX


def stringify(value: Any) -> str:
    """Render a cell the way a user would read it in the sheet."""
    if is_blank(value):
        return ""
    if isinstance(value, datetime):
        if (value.hour, value.minute, value.second) == (0, 0, 0):
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def parse_number(value: Any) -> Optional[float]:
    """Parse native numbers and pt-BR/en currency strings into a float.

    Accepts formats like "1234.56", "1.234,56", "R$ 1.234,56", "-45,90",
    "(1.234,56)" and "150,00-". Returns None for blanks and garbage.
    """
    if isinstance(value, bool) or is_blank(value):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    cleaned = re.sub(r"(R\$|\$|€|£|\s)", "", str(value), flags=re.IGNORECASE)
    if not cleaned:
        return None

    negative = False
    if cleaned.startswith("(") and cleaned.endswith(")"):
        negative = True
        cleaned = cleaned[1:-1]
    if cleaned.startswith("-"):
        negative = True
        cleaned = cleaned[1:]
    elif cleaned.startswith("+"):
        cleaned = cleaned[1:]
    elif cleaned.endswith("-"):
        negative = True
        cleaned = cleaned[:-1]

    comma_count = cleaned.count(",")
    dot_count = cleaned.count(".")
    if comma_count and dot_count:
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif comma_count == 1:
        cleaned = cleaned.replace(",", ".")
    elif comma_count > 1:
        cleaned = cleaned.replace(",", "")
    elif dot_count > 1 or THOUSANDS_DOT_RE.match(cleaned):
        # pt-BR thousands separators only: "1.234" or "1.234.567"
        cleaned = cleaned.replace(".", "")

    if not NUMBER_RE.match(cleaned):
        return None

    amount = float(cleaned)
    return -amount if negative else amount


def _safe_date(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def parse_date(value: Any, *, default_year: Optional[int] = None) -> Optional[str]:
    """Parse a cell into an ISO ``YYYY-MM-DD`` string, or None."""
    if isinstance(value, bool) or is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if is_excel_serial(value):
        return (EXCEL_EPOCH + timedelta(days=int(value))).isoformat()
    if isinstance(value, (int, float)):
        return None

    raw = str(value).strip()

    iso_match = ISO_DATE_RE.match(raw)
    if iso_match:
        year, month, day = (int(part) for part in iso_match.groups())
        return _safe_date(year, month, day)

    br_match = BR_DATE_RE.match(raw)
    if br_match:
        day, month, year_text = br_match.groups()
        year = int(year_text) + 2000 if len(year_text) == 2 else int(year_text)
        return _safe_date(year, int(month), int(day))

    month_match = MONTH_NAME_DATE_RE.match(raw)
    if month_match:
        day, month_name, year_text = month_match.groups()
        year = int(year_text) if year_text else (default_year or date.today().year)
        return _safe_date(year, MONTH_ABBREVIATIONS[month_name.lower()], int(day))

    try:
        return datetime.fromisoformat(raw.replace("Z", "")).date().isoformat()
    except ValueError:
        pass

    for fmt in FALLBACK_DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date().isoformat()
        except ValueError:
            continue

    return None


def parse_transaction_type(value: Any) -> Optional[TransactionType]:
    """Derive receita/despesa from a free-text type cell; None when blank."""
    if is_blank(value):
        return None
    raw = str(value).strip()
    if raw == "+":
        return TransactionType.RECEITA
    if raw == "-":
        return TransactionType.DESPESA

    normalized = normalize_key(raw)
    if any(keyword in normalized for keyword in CARTAO_KEYWORDS):
        return TransactionType.DESPESA
    if any(keyword in normalized for keyword in RECEITA_KEYWORDS):
        return TransactionType.RECEITA
    return TransactionType.DESPESA


def parse_day_of_month(value: Any) -> Optional[int]:
    """Return the day number in 1..31, or None."""
    if isinstance(value, bool) or is_blank(value):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if isinstance(value, int):
        day = value
    else:
        match = re.match(r"^\s*(\d{1,2})(?!\d)", str(value))
        if not match:
            return None
        day = int(match.group(1))
    return day if 1 <= day <= 31 else None


def parse_text(value: Any) -> Optional[str]:
    text = stringify(value)
    return text or None


def is_date_value(value: Any) -> bool:
    """True for Excel serials, date objects and date-shaped strings."""
    if isinstance(value, (date, datetime)):
        return True
    if is_excel_serial(value):
        return True
    if isinstance(value, (bool, int, float)) or is_blank(value):
        return False
    raw = str(value).strip()
    return bool(ISO_DATE_RE.match(raw) or BR_DATE_RE.match(raw) or MONTH_NAME_DATE_RE.match(raw))


def is_numeric_value(value: Any) -> bool:
    return parse_number(value) is not None
