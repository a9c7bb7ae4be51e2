"""
Text normalization helpers

Loose comparison keys for channel identifiers, display names and programme
titles.
"""
import re


_QUALITY_TOKENS_RE = re.compile(r"\b(HD|FHD|UHD|4K)\b", re.IGNORECASE)
_MULTI_SPACE_RE = re.compile(r"\s{2,}")


def strip_quality_tokens(value: str | None) -> str:
    """Remove HD/FHD/UHD/4K tokens (whole words) and collapse spacing."""
    if not value or not value.strip():
        return ""
    stripped = _QUALITY_TOKENS_RE.sub("", value.strip()).strip()
    return _MULTI_SPACE_RE.sub(" ", stripped).strip()


def _alnum_upper(value: str) -> str:
    return "".join(ch.upper() for ch in value if ch.isalnum())


def normalize_key(value: str | None) -> str:
    """
    Normalize a channel id or display name for loose matching.

    Quality tokens are stripped, then only letters/digits are kept, uppercased.

    Args:
        value: Raw identifier or name

    Returns:
        Normalized key, empty string for blank input
    """
    if not value or not value.strip():
        return ""
    return _alnum_upper(strip_quality_tokens(value))


def normalize_title(value: str | None) -> str:
    """Collapse whitespace runs and keep only letters/digits, uppercased."""
    if not value or not value.strip():
        return ""
    return _alnum_upper(_MULTI_SPACE_RE.sub(" ", value.strip()))


def remove_country_suffix(value: str, separator: str) -> str:
    """
    Drop a trailing two-letter country code such as ``.uk`` or ``-de``.

    The separator must sit within the last three characters and not at the
    start of the string; otherwise the value is returned unchanged.
    """
    idx = value.rfind(separator)
    if 0 < idx and idx >= len(value) - 3:
        suffix = value[idx + 1:]
        if len(suffix) == 2 and suffix.isalpha():
            return value[:idx]
    return value
