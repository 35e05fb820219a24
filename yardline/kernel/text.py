"""Small text normalizers shared by the pipeline, resolver and appliers."""

from __future__ import annotations

import re

_NON_PLATE_RE = re.compile(r"[^A-Z0-9]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_rego(value: str | None) -> str:
    """Uppercase and keep only A-Z/0-9 (the stored, comparable form)."""
    return _NON_PLATE_RE.sub("", str(value or "").upper())


def compact_rego(value: str | None) -> str:
    """Uppercase and strip whitespace only (extraction output form)."""
    return _WHITESPACE_RE.sub("", str(value or "")).upper()


def clean(value: str | None) -> str:
    return str(value or "").strip()


def same_text(a: str | None, b: str | None) -> bool:
    """Case-insensitive comparison after trimming."""
    return clean(a).lower() == clean(b).lower()


def vehicle_label(
    *,
    rego: str = "",
    make: str = "",
    model: str = "",
    badge: str = "",
    description: str = "",
    year: str = "",
) -> str:
    """Readable fallback like "XYZ789 - Toyota Corolla SR (white, 2015)"."""
    make_model = " ".join(p for p in (make, model) if p)
    if make_model and badge:
        make_model = f"{make_model} {badge}"
    head = " - ".join(p for p in (rego, make_model) if p) or "Unidentified vehicle"
    tail = ", ".join(p for p in (description, year) if p)
    return f"{head} ({tail})" if tail else head
