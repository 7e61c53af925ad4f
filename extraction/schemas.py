from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, Field, ValidationError, field_validator

from telemetry.logging_utils import get_logger

logger = get_logger(__name__)


class AutofillResult(BaseModel):
    """Fixed-shape form prefill returned by the autofill endpoint."""

    apartmentId: str = ""
    customApartment: str = ""
    floorPlan: str = ""
    bedrooms: str = ""
    bathrooms: str = ""
    privateRoom: bool = False
    currentRent: str = ""
    offerPrice: str = ""
    negotiable: bool = False
    startDate: str = ""
    endDate: str = ""
    description: str = ""
    amenities: List[str] = Field(default_factory=list)
    hasRoommates: bool = False
    roommatesStaying: bool = False
    genderPreference: str = ""

    model_config = {"extra": "ignore"}

    @field_validator(
        "apartmentId",
        "customApartment",
        "floorPlan",
        "bedrooms",
        "bathrooms",
        "currentRent",
        "offerPrice",
        "startDate",
        "endDate",
        "description",
        "genderPreference",
        mode="before",
    )
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("amenities", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> Any:
        if value is None or value == "":
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


def validate_autofill(raw: Any) -> Dict[str, Any]:
    """Coerce a model reply into AutofillResult, dropping fields that do not fit."""
    payload = dict(raw) if isinstance(raw, dict) else {}
    try:
        return AutofillResult.model_validate(payload).model_dump()
    except ValidationError as exc:
        bad = {err["loc"][0] for err in exc.errors() if err.get("loc")}
        logger.warning("autofill_validation_failed", extra={"fields": sorted(str(b) for b in bad)})
        cleaned = {key: value for key, value in payload.items() if key not in bad}
        return AutofillResult.model_validate(cleaned).model_dump()
