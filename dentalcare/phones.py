"""Ukrainian phone number normalisation."""
from __future__ import annotations


def digits_only(s: str) -> str:
    return "".join(ch for ch in s if ch.isdigit())


def format_phone_for_save(phone: str) -> str:
    """Return the canonical ``+380XXXXXXXXX`` form, or the input when unrecognised."""
    raw = digits_only(phone or "")
    if raw.startswith("380") and len(raw) == 12:
        return "+" + raw
    if raw.startswith("0") and len(raw) == 10:
        return "+38" + raw
    if len(raw) == 9:
        return "+380" + raw
    return phone


def format_phone_for_display(phone: str) -> str:
    raw = digits_only(phone or "")
    if len(raw) == 12 and raw.startswith("380"):
        return f"+38 (0{raw[3:5]})-{raw[5:8]}-{raw[8:10]}-{raw[10:12]}"
    return phone
