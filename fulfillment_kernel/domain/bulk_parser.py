"""
Bulk parser -- Turns pasted seller text into validated pool item payloads.

Responsibility:
    Splits raw text into lines and parses each line independently
    according to the item type.  A bad line is reported and skipped; it
    never aborts the batch.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Line formats:
    account      email<d>password[<d>notes]   d in ':', '|', TAB
                 (split at most twice, so notes may contain delimiters)
    license_key  the whole stripped line is the key
    download     url[ name]  or  url|name
                 (no name -> "File <n>", n = 1-based position in the pool)

    Blank lines are ignored: neither created nor skipped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from fulfillment_kernel.domain.dtos import SkippedLine
from fulfillment_kernel.domain.payloads import validate_payload
from fulfillment_kernel.domain.values import ItemType

_ACCOUNT_DELIMITER = re.compile(r"[:\t|]")
_DOWNLOAD_NAME_SEPARATOR = re.compile(r"\s*\|\s*|\s+")


@dataclass(frozen=True)
class ParsedLine:
    line_number: int
    payload: dict[str, str]


@dataclass(frozen=True)
class BulkParseResult:
    parsed: tuple[ParsedLine, ...]
    skipped: tuple[SkippedLine, ...]


def _account_payload(line: str) -> dict[str, str] | None:
    parts = [p.strip() for p in _ACCOUNT_DELIMITER.split(line, maxsplit=2)]
    if len(parts) < 2:
        return None
    payload = {"email": parts[0], "password": parts[1]}
    if len(parts) == 3 and parts[2]:
        payload["notes"] = parts[2]
    return payload


def _download_payload(line: str, position: int) -> dict[str, str]:
    parts = _DOWNLOAD_NAME_SEPARATOR.split(line, maxsplit=1)
    url = parts[0]
    name = parts[1].strip() if len(parts) > 1 else ""
    return {"file_url": url, "file_name": name or f"File {position}"}


def parse_bulk(
    item_type: ItemType | str,
    raw_text: str,
    start_order: int = 0,
) -> BulkParseResult:
    """
    Parse ``raw_text`` into payloads for ``item_type``.

    Args:
        item_type: Item type every line is parsed as.
        raw_text: Pasted text, one item per line.
        start_order: display_order the first parsed item will take; used to
            number unnamed downloads.

    Returns:
        BulkParseResult with the valid payloads in input order and a
        SkippedLine (1-based line number + reason) for each rejected line.
    """
    item_type = ItemType(item_type)
    parsed: list[ParsedLine] = []
    skipped: list[SkippedLine] = []

    for line_number, raw_line in enumerate(raw_text.splitlines(), start=1):
        line = raw_line.strip()
        if not line:
            continue

        if item_type is ItemType.ACCOUNT:
            payload = _account_payload(line)
            if payload is None:
                skipped.append(
                    SkippedLine(line_number, "expected email and password separated by ':', '|' or tab")
                )
                continue
        elif item_type is ItemType.LICENSE_KEY:
            payload = {"key": line}
        else:
            payload = _download_payload(line, start_order + len(parsed) + 1)

        normalized, violations = validate_payload(item_type, payload)
        if violations:
            skipped.append(
                SkippedLine(line_number, "; ".join(v.message for v in violations))
            )
            continue
        parsed.append(ParsedLine(line_number, normalized))

    return BulkParseResult(parsed=tuple(parsed), skipped=tuple(skipped))
