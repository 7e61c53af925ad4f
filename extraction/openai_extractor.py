"""OpenAI-backed listing extraction: autofill, image OCR and Facebook post parsing."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from openai import OpenAI, OpenAIError

from extraction.errors import ExtractionError
from extraction.prompts import (
    AUTOFILL_SYSTEM_PROMPT,
    FACEBOOK_SYSTEM_PROMPT,
    OCR_PROMPT,
    build_facebook_prompt,
)
from extraction.schemas import validate_autofill
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_MIME_TYPE = "image/jpeg"


def get_openai_client(api_key: Optional[str]) -> OpenAI:
    """Create an OpenAI client, raising a helpful error when the key is missing."""
    if not api_key:
        raise ExtractionError("OPENAI_API_KEY is required for listing extraction.")
    return OpenAI(api_key=api_key)


def _image_part(image_base64: str, mime_type: Optional[str]) -> Dict[str, Any]:
    if image_base64.startswith("data:"):
        url = image_base64
    else:
        url = f"data:{mime_type or DEFAULT_MIME_TYPE};base64,{image_base64}"
    return {"type": "image_url", "image_url": {"url": url}}


def _parse_json(content: Optional[str]) -> Dict[str, Any]:
    try:
        parsed = json.loads(content or "")
    except json.JSONDecodeError:
        logger.warning("extraction_json_unparseable", extra={"size": len(content or "")})
        return {"raw": content or ""}
    return parsed if isinstance(parsed, dict) else {"raw": content}


class ListingExtractor:
    def __init__(
        self,
        client: Optional[OpenAI] = None,
        *,
        api_key: Optional[str] = None,
        model: str = DEFAULT_OPENAI_MODEL,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self.model = model

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = get_openai_client(self._api_key)
        return self._client

    def _complete(self, label: str, **kwargs: Any) -> str:
        try:
            response = self.client.chat.completions.create(model=self.model, **kwargs)
        except OpenAIError as exc:
            logger.error("openai_request_failed", extra={"operation": label, "error": str(exc)})
            raise ExtractionError(f"{label} failed: {exc}") from exc
        choice = response.choices[0] if response.choices else None
        content = choice.message.content if choice is not None else None
        logger.info("openai_request_completed", extra={"operation": label, "model": self.model})
        return content or ""

    def autofill(
        self,
        text: Optional[str] = None,
        image_base64: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Turn free text and/or a screenshot into the fixed listing-form shape."""
        content: List[Dict[str, Any]] = []
        if text:
            content.append({"type": "text", "text": text})
        if image_base64:
            content.append(_image_part(image_base64, mime_type))
        if not content:
            raise ValueError("autofill needs text or an image")

        reply = self._complete(
            "autofill",
            messages=[
                {"role": "system", "content": AUTOFILL_SYSTEM_PROMPT},
                {"role": "user", "content": content},
            ],
            max_tokens=1000,
            temperature=0.2,
            response_format={"type": "json_object"},
        )
        parsed = _parse_json(reply)
        if "raw" in parsed and len(parsed) == 1:
            raise ExtractionError("autofill returned a non-JSON reply")
        return validate_autofill(parsed)

    def ocr_image(self, image_base64: str, mime_type: Optional[str] = None) -> str:
        return self._complete(
            "ocr",
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": OCR_PROMPT},
                        _image_part(image_base64, mime_type),
                    ],
                }
            ],
            max_tokens=1024,
        )

    def extract_facebook_post(
        self,
        post_text: str,
        ocr_texts: List[str],
        links: Optional[Dict[str, Any]] = None,
        author_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        reply = self._complete(
            "facebook_extraction",
            messages=[
                {"role": "system", "content": FACEBOOK_SYSTEM_PROMPT},
                {"role": "user", "content": build_facebook_prompt(post_text, ocr_texts, links or {}, author_name)},
            ],
            temperature=0.1,
            response_format={"type": "json_object"},
        )
        return _parse_json(reply)
