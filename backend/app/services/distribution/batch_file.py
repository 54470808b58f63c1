"""Payroll batch file parsing.

A batch file is plain text with one ``credit number -> amount`` pair per
line.  The delimiter is detected once, from the first line, and applied to
every line.  Lines that cannot be read are skipped and reported in the
diagnostics; parsing a file never raises.
"""

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal

from app.services.distribution.amount_parser import try_parse_amount
from app.services.distribution.money import round2

logger = logging.getLogger(__name__)

SEMICOLON = ";"
TAB = "\t"
COMMA = ","
SPACED_HYPHEN = " - "

_LINE_BREAK = re.compile(r"\r?\n")
_SPACED_HYPHEN_SPLIT = re.compile(r"\s+-\s+")

HEADER_KEY_MARKER = "credito"
HEADER_AMOUNT_MARKER = "valor"


@dataclass
class BatchParseResult:
    """Amounts keyed by upper-cased credit number, plus parse diagnostics."""

    amounts: dict[str, Decimal] = field(default_factory=dict)
    delimiter: str | None = None
    header_skipped: bool = False
    data_lines: int = 0
    skipped_lines: list[int] = field(default_factory=list)
    duplicate_keys: list[str] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped_lines)

    @property
    def is_empty(self) -> bool:
        return not self.amounts


def detect_delimiter(first_line: str) -> str:
    """Pick ``;``, then tab, then ``,``; fall back to `` - ``."""
    if SEMICOLON in first_line:
        return SEMICOLON
    if TAB in first_line:
        return TAB
    if COMMA in first_line:
        return COMMA
    return SPACED_HYPHEN


def split_line(line: str, delimiter: str) -> list[str]:
    if delimiter == SPACED_HYPHEN:
        parts = _SPACED_HYPHEN_SPLIT.split(line)
    else:
        parts = line.split(delimiter)
    return [part.strip() for part in parts]


def is_header(fields: list[str]) -> bool:
    if len(fields) < 2:
        return False
    return (
        HEADER_KEY_MARKER in fields[0].lower()
        and HEADER_AMOUNT_MARKER in fields[1].lower()
    )


def decode_batch_bytes(payload: bytes) -> str:
    """Decode an uploaded file; payroll exports are UTF-8 or latin-1."""
    try:
        return payload.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.info("Batch file is not UTF-8, decoding as latin-1")
        return payload.decode("latin-1")


def parse_batch_file(content: str) -> BatchParseResult:
    """Parse *content* into summed amounts per credit number."""
    result = BatchParseResult()
    lines = [line.strip() for line in _LINE_BREAK.split(content)]
    lines = [line for line in lines if line]
    if not lines:
        return result

    delimiter = detect_delimiter(lines[0])
    result.delimiter = delimiter

    for index, line in enumerate(lines):
        fields = split_line(line, delimiter)

        if index == 0 and is_header(fields):
            result.header_skipped = True
            continue

        result.data_lines += 1
        key = fields[0].upper() if fields else ""
        amount = try_parse_amount(fields[1]) if len(fields) > 1 else None
        if not key or amount is None:
            logger.debug("Skipping batch line %d: %r", index + 1, line)
            result.skipped_lines.append(index + 1)
            continue

        if key in result.amounts:
            if key not in result.duplicate_keys:
                result.duplicate_keys.append(key)
            result.amounts[key] = round2(result.amounts[key] + amount)
        else:
            result.amounts[key] = amount

    logger.info(
        "Parsed batch file: %d keys from %d lines (%d skipped, delimiter=%r)",
        len(result.amounts),
        result.data_lines,
        result.skipped_count,
        delimiter,
    )
    return result


def parse_batch(content: str) -> dict[str, Decimal]:
    """Return only the ``key -> amount`` mapping of :func:`parse_batch_file`."""
    return parse_batch_file(content).amounts
