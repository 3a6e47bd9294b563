"""ZIP code geography.

Distances are great-circle distances between ZIP code centroids. The
centroid table comes from the ``zipcodes`` package; ZIPs it does not
know have no location, and anything compared against them has an
unknown distance rather than raising.
"""
from __future__ import annotations

import logging
import math
import re
from functools import lru_cache
from typing import Callable, Iterable, List, Optional, Tuple, TypeVar

import zipcodes

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3958.76
UNKNOWN_DISTANCE = 9999.0

_ZIP_RE = re.compile(r"^\d{5}$")

T = TypeVar("T")


def validate_zip(zip_code: Optional[str]) -> bool:
    """Return ``True`` for exactly five digits (surrounding whitespace ignored)."""
    if not isinstance(zip_code, str):
        return False
    return bool(_ZIP_RE.match(zip_code.strip()))


def normalize_zip(zip_code: Optional[str]) -> Optional[str]:
    """Return the first five characters of ``zip_code``, or ``None``.

    ``"90210-1234"`` becomes ``"90210"``; inputs shorter than five
    characters give ``None``.
    """
    if not zip_code:
        return None
    head = zip_code.strip()[:5]
    return head if len(head) == 5 else None


@lru_cache(maxsize=4096)
def lookup_zip(zip_code: str) -> Optional[Tuple[float, float]]:
    """Return the ``(latitude, longitude)`` centroid of a ZIP, or ``None``."""
    normalized = normalize_zip(zip_code)
    if normalized is None or not validate_zip(normalized):
        return None
    try:
        matches = zipcodes.matching(normalized)
    except (TypeError, ValueError):
        return None
    if not matches:
        logger.debug("No centroid for ZIP %s", normalized)
        return None
    match = matches[0]
    try:
        return float(match["lat"]), float(match["long"])
    except (KeyError, TypeError, ValueError):
        return None


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in miles between two coordinates."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def distance_between_zips(zip_a: Optional[str], zip_b: Optional[str]) -> Optional[float]:
    """Distance in miles between two ZIP centroids, rounded to 0.1 mile."""
    if not zip_a or not zip_b:
        return None
    a = lookup_zip(zip_a)
    b = lookup_zip(zip_b)
    if a is None or b is None:
        return None
    return round(haversine_miles(a[0], a[1], b[0], b[1]), 1)


def is_within_radius(user_zip: Optional[str], other_zip: Optional[str], radius_miles: float) -> bool:
    distance = distance_between_zips(user_zip, other_zip)
    return distance is not None and distance <= radius_miles



def filter_by_zip_and_radius(
    user_zip: str,
    radius_miles: float,
    items: Iterable[T],
    get_zip: Callable[[T], Optional[str]],
) -> List[dict]:
    """Annotate items with distance from ``user_zip`` and sort them.

    Parameters
    ----------
    user_zip: str
        The searcher's ZIP code.
    radius_miles: float
        Items at or within this distance are ``nearby``.
    items: Iterable
        Any objects; ``get_zip`` extracts each one's ZIP.

    Returns
    -------
    List[dict]
        ``{"item", "distance", "nearby"}`` dicts, nearby items first,
        then ascending distance. Unknown distances sort last.
    """
    annotated = []
    for item in items:
        distance = distance_between_zips(user_zip, get_zip(item))
        annotated.append({
            "item": item,
            "distance": distance,
            "nearby": distance is not None and distance <= radius_miles,
        })
    annotated.sort(key=lambda row: (
        not row["nearby"],
        row["distance"] if row["distance"] is not None else UNKNOWN_DISTANCE,
    ))
    return annotated
