"""
Identity Normalization

Canonical property identity is the pair (APN, county). Sources disagree on
how they spell both, so everything is funneled through these helpers before
a property is looked up or upserted.
"""
import hashlib
import re
from typing import Optional, Tuple

COUNTY_SUFFIX = re.compile(r"\s*county\s*$", re.IGNORECASE)
APN_STRIP = re.compile(r"[-.\s]")
APN_COMPACT = re.compile(r"\s")
NON_ALNUM = re.compile(r"[^a-z0-9]")

SYNTHETIC_APN_PREFIX = "CRAWL-"


def normalize_county(raw: Optional[str], fallback: str = "Unknown") -> str:
    """
    Normalize a county name.

    "Spokane County", "spokane county" and "SPOKANE" all become "Spokane".

    Args:
        raw: County name as delivered by the source
        fallback: Returned for empty input

    Returns:
        Title-cased county name without the "County" suffix
    """
    if not raw:
        return fallback
    stripped = COUNTY_SUFFIX.sub("", raw).strip()
    if not stripped:
        return fallback
    return " ".join(token[:1].upper() + token[1:].lower() for token in stripped.split())


def normalize_apn(raw: Optional[str], style: str = "strip") -> str:
    """
    Normalize a parcel number.

    Args:
        raw: APN as delivered by the source
        style: "strip" removes dashes, dots and whitespace;
            "compact" only removes whitespace

    Returns:
        Upper-cased APN, "" for empty input
    """
    if not raw:
        return ""
    if style == "compact":
        cleaned = APN_COMPACT.sub("", str(raw))
    elif style == "strip":
        cleaned = APN_STRIP.sub("", str(raw))
    else:
        raise ValueError(f"Unknown APN style: {style}")
    return cleaned.upper()


def synthetic_apn(name: str, county: str, address: Optional[str] = None) -> str:
    """Stable placeholder APN for harvested records that carry none."""
    parts = [name or "", county or "", address or "noaddr"]
    slug = "-".join(NON_ALNUM.sub("", part.lower()) for part in parts)
    digest = hashlib.md5(slug.encode("utf-8")).hexdigest()[:12].upper()
    return f"{SYNTHETIC_APN_PREFIX}{digest}"


def is_synthetic_apn(apn: str) -> bool:
    return bool(apn) and apn.startswith(SYNTHETIC_APN_PREFIX)


def golden_identity(apn: Optional[str], county: Optional[str]) -> Tuple[str, str]:
    """Canonical (apn, county) key used for property upserts."""
    if apn and is_synthetic_apn(apn):
        return apn, normalize_county(county)
    return normalize_apn(apn), normalize_county(county)
