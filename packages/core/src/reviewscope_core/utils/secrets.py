from __future__ import annotations


def mask_secret(value: str | None, visible: int = 4) -> str:
    """Return ``value`` with everything but its last ``visible`` characters masked."""
    if not value:
        return "<unset>"
    if len(value) <= visible * 2:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]
