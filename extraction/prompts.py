from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

AUTOFILL_AMENITIES = [
    "In-unit Washer/Dryer",
    "Fully Furnished",
    "Gym Access",
    "Pool",
    "High-Speed Internet",
    "Parking Included",
    "Cable TV Included",
    "Utilities Included",
    "Pet Friendly",
    "Balcony/Patio",
    "Air Conditioning",
    "Dishwasher",
    "Security System",
    "Study Room",
    "Bus Route",
]

AUTOFILL_SYSTEM_PROMPT = f"""You are an assistant that helps extract apartment listing information from text and images.
Extract the following fields if present:
- Apartment name and address (if available)
- Floor plan name (if available)
- Number of bedrooms
- Number of bathrooms
- Whether it has a private bathroom
- Current monthly rent
- Offer price for sublease
- Whether the price is negotiable
- Lease start date
- Lease end date
- Description of the apartment
- Amenities (from this list: {", ".join(AUTOFILL_AMENITIES)})
- Whether there are roommates
- If roommates are staying during sublease
- Gender preference for roommates (if any)

Return the data in JSON format with these exact keys:
{{
  "apartmentId": "",
  "customApartment": "",
  "floorPlan": "",
  "bedrooms": "",
  "bathrooms": "",
  "privateRoom": false,
  "currentRent": "",
  "offerPrice": "",
  "negotiable": false,
  "startDate": "",
  "endDate": "",
  "description": "",
  "amenities": [],
  "hasRoommates": false,
  "roommatesStaying": false,
  "genderPreference": ""
}}

For dates, use YYYY-MM-DD format. For bedrooms and bathrooms, extract the number only.
If an apartment name matches one of the common apartments in State College, PA, identify it. If not, put the name in customApartment.
For missing information, leave the field empty or use appropriate default values."""

OCR_PROMPT = (
    "Extract ALL text from this image, focusing on sublease details like price, apartment name, dates, "
    'room configuration (e.g., 1B1B, 2BR/2BA, "2 bedroom with one bathroom"), special requirements '
    "(vegetarian, gender preferences), and any contact information. Provide a comprehensive extraction "
    "of all visible text."
)

FACEBOOK_SYSTEM_PROMPT = (
    "You are a specialized data extraction assistant for Penn State University sublease listings. "
    "Your task is to extract precise, structured information from Facebook posts and images. "
    "Make your best inference for required fields, even if the information is not explicitly stated."
)

FACEBOOK_FIELDS_PROMPT = """Extract all relevant sublease listing information from the following Facebook post and OCR text. Return a JSON object with ONLY these fields:
- apartment_name (required): Name of the apartment complex or building (e.g. "The Rise", "The Metropolitan")
- address (if available): Full address of the property
- price (if available): Monthly rental price in numbers only (e.g. 750, not "$750/month"). If price includes "+ utilities", just extract the base price number. If no price is specified, leave blank.
- start_date (if available): The earliest date the sublease is available (in format "YYYY-MM-DD" if possible)
- end_date (if available): The last date the sublease is available (in format "YYYY-MM-DD" if possible)
- bedrooms (if available): Number of bedrooms as a number
- bathrooms (if available): Number of bathrooms as a number
- description (required): A detailed summary combining important information from the post, including special requirements
- amenities (if available): Array of amenities mentioned (e.g. ["Washer/Dryer", "Fully Furnished", "Gym", "Pool"])
- author_username (if available): Name of the person posting
- special_requirements (if available): Any specific requirements for roommates or living conditions

IMPORTANT INSTRUCTIONS:
- Look especially for patterns like "$X + utilities", "X-bedroom apartment with Y bathroom", "Month DD till Month DD"
- For price and dates, if not provided, leave these fields empty or null - do NOT invent or guess values
- Convert price ranges to the lower value (e.g. "$750-800" should be 750)
- If price is listed with utilities, extract just the base rent
- Look for special requirements (e.g. "female roommates only", "pure vegetarian", "no pets") and include them in both description and special_requirements
- Include all relevant contact information in the description field
- Academic years like "2025-2026" or "25/26 year" mean 2025-08-01 to 2026-07-31
"""


def build_facebook_prompt(
    post_text: str,
    ocr_texts: List[str],
    links: Dict[str, Any],
    author_name: Optional[str] = None,
) -> str:
    parts = [FACEBOOK_FIELDS_PROMPT]
    if author_name:
        parts.append(f"Likely author name: {author_name}")
    parts.append(f"Post Text:\n{post_text or ''}")
    parts.append("OCR Texts:\n" + "\n---\n".join(ocr_texts or []))
    parts.append(f"Links:\n{json.dumps(links or {})}")
    return "\n\n".join(parts)
