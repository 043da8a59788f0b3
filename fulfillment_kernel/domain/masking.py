"""
Masking -- Hides sensitive delivered data until the buyer reveals it.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Rules:
    password, notes   fully hidden
    email             first character(s) of the local part + domain
    key               all but the last four characters hidden
    file_url          reduced to scheme and host
    everything else   shown as is
"""

from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import urlparse

MASK = "********"


def mask_email(email: str) -> str:
    local, sep, domain = email.partition("@")
    if not sep:
        return mask_secret_tail(email, visible=0)
    keep = 2 if len(local) > 4 else 1
    return f"{local[:keep]}***@{domain}"


def mask_secret_tail(value: str, visible: int = 4) -> str:
    """Hide everything but the last ``visible`` characters."""
    if visible <= 0 or len(value) <= visible:
        return MASK
    return "*" * max(len(value) - visible, 4) + value[-visible:]


def mask_url(url: str) -> str:
    parsed = urlparse(url)
    host = parsed.hostname or ""
    try:
        port = parsed.port
    except ValueError:
        port = None
    if port:
        host = f"{host}:{port}"
    return f"{parsed.scheme}://{host}/…"


_RULES = {
    "password": lambda v: MASK,
    "notes": lambda v: MASK,
    "email": mask_email,
    "key": mask_secret_tail,
    "file_url": mask_url,
}


def mask_delivered_data(data: Mapping[str, Any]) -> dict[str, Any]:
    """Masked copy of ``data``; the input is not modified."""
    masked: dict[str, Any] = {}
    for key, value in data.items():
        rule = _RULES.get(key)
        if rule is not None and isinstance(value, str):
            masked[key] = rule(value)
        else:
            masked[key] = value
    return masked
