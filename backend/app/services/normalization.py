"""Pure normalization helpers for receipt fields and channel identifiers.

All functions are deterministic, side-effect free and never raise on bad
input: values they cannot interpret are returned trimmed (dates, tax ids)
or as ``""`` (amounts).
"""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

# National number lengths (area code + subscriber) accepted after stripping
# a country code. Brazil: 10 digits landline, 11 digits mobile.
NATIONAL_NUMBER_LENGTHS: dict[str, tuple[int, ...]] = {
    "55": (10, 11),
}

_DMY_RE = re.compile(r"^(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{2}|\d{4})$")
_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_CURRENCY_RE = re.compile(r"[^\d,.\-]")


def digits_only(value: str) -> str:
    return re.sub(r"\D", "", value or "")


def normalize_phone(sender_id: str, country_code: str = "55") -> str:
    """Return the national form of a channel sender id.

    ``"5511987654321"`` -> ``"11987654321"``; ``"+55 (11) 98765-4321"`` ->
    ``"11987654321"``. Numbers that do not start with *country_code*, or whose
    remainder is not a valid national length, come back as plain digits.
    """
    digits = digits_only(sender_id)
    code = digits_only(country_code)
    if not digits or not code or not digits.startswith(code):
        return digits

    national = digits[len(code) :]
    allowed = NATIONAL_NUMBER_LENGTHS.get(code)
    if allowed is None:
        return national if national else digits
    if len(national) in allowed:
        return national
    return digits


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def normalize_date(value: Any) -> str:
    """Convert a day-first date into ISO ``YYYY-MM-DD``.

    Accepted: ``DD/MM/YYYY``, ``DD-MM-YYYY``, ``DD.MM.YYYY`` and two-digit
    years (``DD/MM/YY`` -> 20YY). ISO input is re-emitted zero padded.
    Anything else, including impossible calendar dates, is returned trimmed.
    """
    if value is None:
        return ""
    text = str(value).strip()
    if not text:
        return ""

    iso = _ISO_RE.match(text)
    if iso:
        parsed = _safe_date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))
        return parsed.isoformat() if parsed else text

    dmy = _DMY_RE.match(text)
    if not dmy:
        return text

    day, month, year = int(dmy.group(1)), int(dmy.group(2)), dmy.group(3)
    full_year = int(year) + 2000 if len(year) == 2 else int(year)
    parsed = _safe_date(full_year, month, day)
    return parsed.isoformat() if parsed else text


def normalize_amount(value: Any) -> str:
    """Return *value* as a two-decimal string, or ``""`` when it is not a number.

    Handles ``150``, ``"150.00"``, ``"R$ 1.234,56"``, ``"1,234.56"`` and
    ``"150,5"``. The rightmost of ``,``/``.`` is taken as the decimal mark
    when both appear; a lone separator followed by exactly three digits is a
    thousands separator.
    """
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, (int, float, Decimal)):
        number = Decimal(str(value))
        if not number.is_finite():
            return ""
        try:
            return f"{number.quantize(Decimal('0.01'))}"
        except InvalidOperation:
            return ""

    text = _CURRENCY_RE.sub("", str(value).strip())
    if not text or not any(ch.isdigit() for ch in text):
        return ""

    negative = text.startswith("-")
    # Sentence punctuation around the figure is not a separator.
    text = text.replace("-", "").strip(",.")

    last_comma = text.rfind(",")
    last_dot = text.rfind(".")
    if last_comma != -1 and last_dot != -1:
        decimal_mark = "," if last_comma > last_dot else "."
        thousands = "." if decimal_mark == "," else ","
        text = text.replace(thousands, "").replace(decimal_mark, ".")
    elif last_comma != -1 or last_dot != -1:
        mark = "," if last_comma != -1 else "."
        parts = text.split(mark)
        if len(parts) > 2 or len(parts[-1]) == 3:
            text = "".join(parts)
        else:
            text = ".".join(parts)

    try:
        amount = Decimal(text).quantize(Decimal("0.01"))
    except InvalidOperation:
        return ""
    if negative:
        amount = -amount
    return f"{amount}"


def normalize_tax_id(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def redact_phone(value: str) -> str:
    if not value:
        return ""
    # Keep last 3 digits for operator traceability; mask the rest.
    tail = value[-3:] if len(value) >= 3 else value
    return f"***{tail}"
