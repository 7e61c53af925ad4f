"""Post-processing and shaping for listings imported from Facebook group posts.

The model's structured reply is unreliable on exactly the fields the UI
needs most, so `process_extracted_data` backfills them from the raw post
and OCR text with deterministic heuristics. `build_facebook_row` turns the
result into a `facebook_listings` row and `to_listing_view` maps a stored
row onto the common listing view model.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

DEFAULT_APARTMENT_NAME = "Penn State Sublease"
DEFAULT_IMAGE = "/apt_defaults/fb.png"
IMAGE_BUCKET = "property-images"
IMAGE_PREFIX = "facebook-listings"

KNOWN_COMPLEXES = [
    "The Rise",
    "The Station",
    "The Metropolitan",
    "The Legacy",
    "University Gateway",
    "The Meridian",
    "The Heights",
    "Park Hill",
    "Lions Crossing",
    "Beaver Hill",
    "Vairo Village",
    "Tremont Student Living",
    "The View",
    "State College Park",
    "The Pointe",
    "University Terrace",
    "Nittany Crossing",
    "Campus Crossing",
]

AMENITY_KEYWORDS: Dict[str, List[str]] = {
    "clubhouse": ["club house", "clubhouse", "common area", "community center"],
    "pool": ["pool", "swimming"],
    "gym": ["gym", "fitness center", "workout"],
    "bus pass": ["bus pass", "cata", "bus route", "transportation"],
    "laundry": ["washer", "dryer", "laundry", "w/d"],
    "furnished": ["furnished", "furniture"],
    "parking": ["parking", "garage", "spot", "space"],
    "utilities included": ["utilities included", "utilities paid", "all utilities"],
    "wifi": ["wifi", "internet", "high-speed"],
    "cable": ["cable", "tv"],
    "balcony": ["balcony", "patio", "terrace"],
    "dishwasher": ["dishwasher"],
    "pet friendly": ["pet friendly", "pets allowed", "dog", "cat"],
    "air conditioning": ["a/c", "air conditioning", "central air"],
    "security": ["security", "gated", "surveillance"],
}

SPECIAL_REQUIREMENT_PATTERNS = [
    re.compile(r"(?:pure |strict )?vegetarian", re.I),
    re.compile(r"(?:female|male|men|women|girl|boy)s? (?:only|preferred)", re.I),
    re.compile(r"no smoking|non[\s-]smoking", re.I),
    re.compile(r"no pets|pet[\s-]free", re.I),
]

FULL_YEAR_RE = re.compile(r"(\d{4})\s*[-/]\s*(\d{4})")
SHORT_YEAR_RE = re.compile(r"(\d{2})\s*[-/]\s*(\d{2})(?:\s*school\s*year|\s*academic\s*year|\s*year)", re.I)
BARE_YEAR_RE = re.compile(r"academic\s*year|school\s*year", re.I)
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

BEDROOM_TEXT_RE = re.compile(r"(\d+)[\s-]bedroom", re.I)
BATHROOM_ONE_RE = re.compile(r"one\s+bathroom", re.I)
BATHROOM_TEXT_RE = re.compile(r"(\d+)\s*bathroom", re.I)
ROOM_PAIR_PATTERNS = [
    re.compile(r"(\d+)B(\d+)B", re.I),
    re.compile(r"(\d+)BR\s*/?\s*(\d+)BA", re.I),
    re.compile(r"(\d+)\s*bed(?:room)?s?\s*(\d+)\s*bath(?:room)?s?", re.I),
]
TIMESTAMP_RE = re.compile(r"\d+h")

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%B %d, %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%Y-%m-%dT%H:%M:%S",
)


def _missing(value: Any) -> bool:
    return value is None or value == "" or value == "N/A"


def _room_pair(text: str) -> Optional[re.Match]:
    for pattern in ROOM_PAIR_PATTERNS:
        match = pattern.search(text)
        if match:
            return match
    return None


def _academic_year(text: str, today: date) -> Optional[tuple]:
    match = FULL_YEAR_RE.search(text)
    if match:
        return f"{int(match.group(1))}-08-01", f"{int(match.group(2))}-07-31"
    match = SHORT_YEAR_RE.search(text)
    if match:
        start, end = int(match.group(1)), int(match.group(2))
        start = 2000 + start if start < 50 else 1900 + start
        end = 2000 + end if end < 50 else 1900 + end
        return f"{start}-08-01", f"{end}-07-31"
    if BARE_YEAR_RE.search(text):
        # From July on, the upcoming academic year is meant.
        if today.month >= 7:
            return f"{today.year}-08-01", f"{today.year + 1}-07-31"
        return f"{today.year - 1}-08-01", f"{today.year}-07-31"
    return None


def normalize_date(value: Any) -> Optional[str]:
    """Return `value` as YYYY-MM-DD, or None when it cannot be read as a date."""
    if _missing(value) or not isinstance(value, str):
        return None
    text = value.strip()
    if ISO_DATE_RE.match(text):
        return text
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def _to_int(value: Any, default: int) -> int:
    match = re.match(r"\s*(\d+)", str(value))
    return int(match.group(1)) if match else default


def _to_float(value: Any, default: float) -> float:
    try:
        return float(str(value).strip())
    except ValueError:
        return default


def _parse_price(value: Any) -> Optional[float]:
    if _missing(value):
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    match = re.match(r"\s*\$?\s*(-?\d+(?:\.\d+)?)", str(value).replace(",", ""))
    return float(match.group(1)) if match else None


def process_extracted_data(
    data: Optional[Dict[str, Any]],
    post_text: Optional[str],
    ocr_texts: Optional[Sequence[str]],
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Backfill apartment, description, price, dates, rooms, requirements and amenities."""
    if not data:
        return {}
    today = today or datetime.now(timezone.utc).date()
    processed = dict(data)
    ocr_texts = [t for t in (ocr_texts or []) if t]
    all_text = " ".join([post_text or "", *ocr_texts])
    lowered = all_text.lower()

    if _missing(processed.get("apartment_name")):
        processed["apartment_name"] = next(
            (name for name in KNOWN_COMPLEXES if name.lower() in lowered),
            DEFAULT_APARTMENT_NAME,
        )

    if _missing(processed.get("description")):
        description = ""
        if post_text:
            description += f"Facebook Post:\n{post_text}\n\n"
        if ocr_texts:
            description += "OCR:\n" + "\n---\n".join(ocr_texts)
        processed["description"] = description or "No description provided"

    processed["price"] = _parse_price(processed.get("price"))
    if processed["price"] is None:
        processed.pop("price")

    academic = _academic_year(all_text, today)
    if academic:
        processed["start_date"], processed["end_date"] = academic
    for key in ("start_date", "end_date"):
        normalized = normalize_date(processed.get(key))
        if normalized:
            processed[key] = normalized
        else:
            processed.pop(key, None)

    bedrooms = processed.get("bedrooms")
    if _missing(bedrooms) or bedrooms == 0:
        match = BEDROOM_TEXT_RE.search(all_text)
        if match:
            processed["bedrooms"] = int(match.group(1))
        else:
            pair = _room_pair(all_text)
            processed["bedrooms"] = int(pair.group(1)) if pair else 1
    elif isinstance(bedrooms, str):
        processed["bedrooms"] = _to_int(bedrooms, 1) or 1

    bathrooms = processed.get("bathrooms")
    if _missing(bathrooms) or bathrooms == 0:
        if BATHROOM_ONE_RE.search(all_text):
            processed["bathrooms"] = 1
        else:
            match = BATHROOM_TEXT_RE.search(all_text)
            if match:
                processed["bathrooms"] = int(match.group(1))
            else:
                pair = _room_pair(all_text)
                processed["bathrooms"] = int(pair.group(2)) if pair else 1
    elif isinstance(bathrooms, str):
        processed["bathrooms"] = _to_float(bathrooms, 1) or 1

    if not processed.get("special_requirements"):
        found = []
        for pattern in SPECIAL_REQUIREMENT_PATTERNS:
            match = pattern.search(all_text)
            if match:
                found.append(match.group(0))
        if found:
            processed["special_requirements"] = ", ".join(found)
            description = processed.get("description") or ""
            if found[0] not in description:
                processed["description"] = f"{description}\n\nSpecial Requirements: {processed['special_requirements']}"

    amenities = processed.get("amenities")
    amenities = [a for a in amenities if isinstance(a, str)] if isinstance(amenities, list) else []
    for amenity, keywords in AMENITY_KEYWORDS.items():
        if any(amenity in existing.lower() for existing in amenities):
            continue
        if any(keyword in lowered for keyword in keywords):
            amenities.append(amenity[0].upper() + amenity[1:])
    processed["amenities"] = amenities

    return processed


def guess_author_name(post_text: Optional[str]) -> Optional[str]:
    """First line of a copied post is usually the poster's name, unless it is a timestamp."""
    if not post_text:
        return None
    first = post_text.split("\n")[0].strip()
    if not first or TIMESTAMP_RE.search(first):
        return None
    return first


def image_path(filename: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    stamp = int(now.timestamp() * 1000)
    safe = re.sub(r"[^A-Za-z0-9._-]", "_", filename or "image")
    return f"{IMAGE_PREFIX}/{stamp}-{safe}"


def build_facebook_row(
    parsed: Dict[str, Any],
    *,
    post_text: Optional[str],
    images: List[str],
    facebook_post_link: Optional[str],
    facebook_group_link: str,
    author_profile_link: Optional[str],
    author_username: Optional[str],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    offer_price = parsed.get("price")
    start_date = parsed.get("start_date") or None
    end_date = parsed.get("end_date") or None
    return {
        "post_text": post_text,
        "images": images,
        "date_posted": stamp,
        "facebook_post_link": facebook_post_link,
        "facebook_group_link": facebook_group_link,
        "author_profile_link": author_profile_link,
        "author_username": author_username or parsed.get("author_username") or "Anonymous",
        "parsed_listing_data": parsed,
        "custom_apartment": parsed.get("apartment_name") or DEFAULT_APARTMENT_NAME,
        "offer_price": offer_price,
        "start_date": start_date,
        "end_date": end_date,
        "bedrooms": parsed.get("bedrooms") or 1,
        "bathrooms": parsed.get("bathrooms") or 1,
        "amenities": parsed.get("amenities") or [],
        "description": parsed.get("description") or "No description provided",
        "address": parsed.get("address") or "",
        "special_requirements": parsed.get("special_requirements") or "",
        "display_price": offer_price if offer_price is not None else "Contact for price",
        "display_dates": f"{start_date} to {end_date}" if start_date and end_date else "Contact for dates",
        "created_at": stamp,
        "updated_at": stamp,
    }


def to_listing_view(row: Dict[str, Any]) -> Dict[str, Any]:
    parsed = row.get("parsed_listing_data") or {}
    name = parsed.get("apartment_name") or ""
    price = parsed.get("price") or 0
    return {
        "id": row.get("id"),
        "user_id": None,
        "apartment_id": None,
        "custom_apartment": name,
        "apartments": {"address": parsed.get("address") or "", "name": name},
        "floor_plan": parsed.get("floor_plan") or "",
        "bedrooms": parsed.get("bedrooms") or 0,
        "bathrooms": parsed.get("bathrooms") or 0,
        "current_rent": price,
        "offer_price": price,
        "negotiable": False,
        "start_date": parsed.get("start_date") or "",
        "end_date": parsed.get("end_date") or "",
        "description": parsed.get("description") or row.get("post_text") or "",
        "amenities": parsed.get("amenities") or [],
        "has_roommates": False,
        "roommates_staying": None,
        "gender_preference": None,
        "images": row.get("images") or [],
        "created_at": row.get("created_at"),
        "updated_at": row.get("updated_at"),
        "is_facebook_listing": True,
        "facebook_post_link": row.get("facebook_post_link"),
        "facebook_group_link": row.get("facebook_group_link"),
        "author_profile_link": row.get("author_profile_link"),
        "author_username": row.get("author_username"),
        "parsed_listing_data": parsed,
    }
