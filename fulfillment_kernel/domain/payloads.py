"""
Payloads -- Shape validation and normalization of pool item payloads.

Responsibility:
    Checks that a seller-supplied payload carries the fields its item type
    needs and produces the canonical dict that is stored on the pool item.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Rules:
    account      email, password required; notes optional
    license_key  key required; activation_url optional (absolute http(s) URL)
    download     file_url required (absolute http/https/ftp URL);
                 file_name optional

    Values are stripped strings.  Unknown keys are dropped.  The camelCase
    spellings ``activationUrl``, ``fileUrl`` and ``fileName`` are accepted
    as aliases.

Failure modes:
    - ValidationError listing every violation found, never just the first.
"""

from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import urlparse

from fulfillment_kernel.domain.dtos import FieldViolation
from fulfillment_kernel.domain.values import ItemType
from fulfillment_kernel.exceptions import ValidationError

_REQUIRED: dict[ItemType, tuple[str, ...]] = {
    ItemType.ACCOUNT: ("email", "password"),
    ItemType.LICENSE_KEY: ("key",),
    ItemType.DOWNLOAD: ("file_url",),
}

_OPTIONAL: dict[ItemType, tuple[str, ...]] = {
    ItemType.ACCOUNT: ("notes",),
    ItemType.LICENSE_KEY: ("activation_url",),
    ItemType.DOWNLOAD: ("file_name",),
}

_ALIASES = {
    "activationUrl": "activation_url",
    "fileUrl": "file_url",
    "fileName": "file_name",
}

DOWNLOAD_SCHEMES = frozenset({"http", "https", "ftp"})
ACTIVATION_SCHEMES = frozenset({"http", "https"})


def coerce_item_type(item_type: ItemType | str) -> ItemType:
    """Parse an item type, reporting unknown values as a ValidationError."""
    try:
        return ItemType(item_type)
    except ValueError:
        raise ValidationError(
            None,
            (
                FieldViolation(
                    code="UNKNOWN_ITEM_TYPE",
                    message=f"Unknown item type: {item_type!r}",
                    field="item_type",
                ),
            ),
        ) from None


def is_absolute_url(value: str, schemes: frozenset[str]) -> bool:
    parsed = urlparse(value)
    return parsed.scheme.lower() in schemes and bool(parsed.netloc)


def _canonical_keys(payload: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in payload.items():
        canonical = _ALIASES.get(key, key)
        # An explicit snake_case key wins over its alias
        if canonical in out and key != canonical:
            continue
        out[canonical] = value
    return out


def validate_payload(
    item_type: ItemType | str,
    payload: Any,
) -> tuple[dict[str, str], tuple[FieldViolation, ...]]:
    """
    Validate ``payload`` for ``item_type``.

    Returns:
        (normalized payload, violations).  The payload is only meaningful
        when violations is empty.
    """
    item_type = ItemType(item_type)

    if not isinstance(payload, Mapping):
        return {}, (
            FieldViolation(
                code="PAYLOAD_NOT_MAPPING",
                message="Payload must be an object",
            ),
        )

    raw = _canonical_keys(payload)
    violations: list[FieldViolation] = []
    normalized: dict[str, str] = {}

    for name in _REQUIRED[item_type] + _OPTIONAL[item_type]:
        required = name in _REQUIRED[item_type]
        value = raw.get(name)
        if value is None:
            if required:
                violations.append(
                    FieldViolation("MISSING_FIELD", f"'{name}' is required", name)
                )
            continue
        if not isinstance(value, str):
            violations.append(
                FieldViolation("INVALID_TYPE", f"'{name}' must be a string", name)
            )
            continue
        value = value.strip()
        if not value:
            if required:
                violations.append(
                    FieldViolation("EMPTY_FIELD", f"'{name}' must not be empty", name)
                )
            continue
        normalized[name] = value

    url = normalized.get("file_url")
    if url is not None and not is_absolute_url(url, DOWNLOAD_SCHEMES):
        violations.append(
            FieldViolation(
                "INVALID_URL",
                "'file_url' must be an absolute http, https or ftp URL",
                "file_url",
            )
        )

    activation = normalized.get("activation_url")
    if activation is not None and not is_absolute_url(activation, ACTIVATION_SCHEMES):
        violations.append(
            FieldViolation(
                "INVALID_URL",
                "'activation_url' must be an absolute http or https URL",
                "activation_url",
            )
        )

    return normalized, tuple(violations)


def normalize_payload(item_type: ItemType | str, payload: Any) -> dict[str, str]:
    """
    Validated, canonical payload for storage.

    Raises:
        ValidationError: carrying every violation.
    """
    item_type = coerce_item_type(item_type)
    normalized, violations = validate_payload(item_type, payload)
    if violations:
        raise ValidationError(item_type.value, violations)
    return normalized
