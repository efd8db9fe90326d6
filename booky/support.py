"""Helpers for country codes, metadata maps and time zones."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import timezone, tzinfo
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from booky.config import Config

_EU_COUNTRIES = frozenset(
    {
        "AT", "AX", "BE", "BG", "HR", "CY", "CZ", "DE", "DK", "EE", "EL", "ES",
        "FI", "FR", "GR", "HU", "IE", "IT", "LT", "LU", "LV", "MT", "NL", "PL",
        "PT", "RO", "SE", "SI", "SK",
    }
)
_GOODS_CATEGORIES = frozenset({"goods", "physical_goods", "physical"})
_TRUE_LITERALS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_EXTRA_TRUTHY = frozenset({"yes", "y"})


def normalize_country(country: str) -> str:
    """Trim and upper-case a country code."""
    return country.strip().upper()


def country_prefix(value: str) -> str:
    """Return the normalised two-letter prefix of a value, or "" if too short."""
    if len(value) < 2:
        return ""
    return normalize_country(value[:2])


def is_goods_category(category: str) -> bool:
    """Whether a sale category names physical goods."""
    return category.strip().lower() in _GOODS_CATEGORIES


def is_eu_country(country: str) -> bool:
    """Whether a country code belongs to the EU list used for VAT decisions."""
    return normalize_country(country) in _EU_COUNTRIES


def merge_string_maps(*sources: Optional[Mapping[str, str]]) -> dict[str, str]:
    """Merge maps left to right; later maps win. ``None`` entries are skipped."""
    merged: dict[str, str] = {}
    for source in sources:
        if source:
            merged.update(source)
    return merged


def map_string(metadata: Optional[Mapping[str, str]], *keys: str) -> str:
    """Return the first non-blank trimmed value among ``keys``."""
    if not metadata:
        return ""
    for key in keys:
        value = (metadata.get(key) or "").strip()
        if value:
            return value
    return ""


def map_truthy(metadata: Optional[Mapping[str, str]], *keys: str) -> bool:
    """Truthiness of the first non-blank value among ``keys``."""
    if not metadata:
        return False
    for key in keys:
        value = (metadata.get(key) or "").strip()
        if value:
            return truthy_string(value)
    return False


def parse_bool(value: str) -> bool:
    """True only for the strict boolean literals that mean true."""
    return value in _TRUE_LITERALS


def truthy_string(value: str) -> bool:
    """Like :func:`parse_bool`, but also accepts "yes" and "y" in any case."""
    if parse_bool(value):
        return True
    return value.strip().lower() in _EXTRA_TRUTHY


def location_or_utc(cfg: "Config") -> tzinfo:
    """The configured time zone, falling back to UTC when it cannot be loaded."""
    try:
        return cfg.location()
    except ValueError:
        return timezone.utc