"""Model identity helpers for report summaries."""
from __future__ import annotations

import re

_VERSION_TOKEN_PATTERN = re.compile(r"^\d+$")
_DATE_SUFFIX_PATTERN = re.compile(r"(?:-\d{8}|-\d{4}-\d{2}-\d{2})+$")
_SYNTHETIC_MODELS = {"<synthetic>", "unknown"}


def _title_case(value: str) -> str:
    return " ".join(part.capitalize() for part in (value or "").strip().split() if part.strip())


def is_real_model(raw_model: str | None) -> bool:
    raw = (raw_model or "").strip().lower()
    return bool(raw) and raw not in _SYNTHETIC_MODELS


def canonical_model_name(raw_model: str | None) -> str:
    """Lower-case model id without build/date suffixes.

    Example:
      claude-opus-4-5-20251101 -> claude-opus-4-5
    """
    raw = (raw_model or "").strip().lower()
    if not raw:
        return ""
    normalized = re.sub(r"[\s_]+", "-", raw)
    normalized = re.sub(r"-{2,}", "-", normalized).strip("-")
    stripped = _DATE_SUFFIX_PATTERN.sub("", normalized).strip("-")
    return stripped or normalized


def model_display_name(raw_model: str | None) -> str:
    """Human label such as ``Claude Opus 4.5``; falls back to the raw id."""
    raw = (raw_model or "").strip()
    if not raw:
        return ""

    parts = [part for part in canonical_model_name(raw).split("-") if part]
    provider = "Claude" if parts and parts[0] == "claude" else _title_case(parts[0]) if parts else ""

    named = [part for part in parts[1:] if not _VERSION_TOKEN_PATTERN.match(part)]
    numbers = [part for part in parts[1:] if _VERSION_TOKEN_PATTERN.match(part)][:2]
    family = _title_case(named[0]) if named else ""
    version = ".".join(numbers)

    label = " ".join(part for part in (provider, family, version) if part)
    return label or raw
