"""Render document numbers from sequence settings."""

import re
from datetime import datetime

DEFAULT_TEMPLATE = "{prefix}{number}{suffix}"

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def pad_number(number: int, number_length: int) -> str:
    """Zero-pad to number_length; wider numbers keep their natural width."""
    return str(number).zfill(max(number_length, 1))


def exceeds_length(number: int, number_length: int) -> bool:
    return len(str(number)) > number_length


def format_document_number(
    prefix: str,
    number: int,
    number_length: int,
    suffix: str,
    template: str | None = None,
    issued_at: datetime | None = None,
) -> str:
    """
    Build the human-readable document number.

    Supported placeholders: {prefix}, {number}, {suffix}, and {year}, {month},
    {day} when issued_at is given. Anything else in the template is copied
    as-is, so a stray brace never breaks numbering.

    Examples:
        format_document_number("INV-", 41, 4, "")            -> "INV-0041"
        format_document_number("RX", 7, 3, "/A", "{prefix}-{number}{suffix}") -> "RX-007/A"
        format_document_number("", 10000, 4, "")             -> "10000"
    """
    tokens = {
        "{prefix}": prefix or "",
        "{number}": pad_number(number, number_length),
        "{suffix}": suffix or "",
    }
    if issued_at is not None:
        tokens["{year}"] = f"{issued_at.year:04d}"
        tokens["{month}"] = f"{issued_at.month:02d}"
        tokens["{day}"] = f"{issued_at.day:02d}"

    # Single pass: braces inside prefix or suffix values are never expanded
    return _PLACEHOLDER.sub(
        lambda m: tokens.get(m.group(0), m.group(0)), template or DEFAULT_TEMPLATE
    )
