"""
Structured extraction of business card fields using Gemini.

The enhanced image is sent together with a response schema naming the ten
contact fields, so the model returns a JSON object instead of free text.
Single attempt per call: failures surface as ExtractionError and the caller
decides whether to try again.
"""

import asyncio
import json
import logging
import os
from typing import Any, Dict, Optional

from google import genai
from google.genai import types

from .errors import ExtractionError
from .models import BUSINESS_TYPES, FIELD_KEYS, ExtractionResult
from .preprocessing import EnhancedImage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
REQUIRED_FIELDS = ["companyName", "contactNumber"]


def build_response_schema() -> types.Schema:
    """Schema for the ten contact fields; businessType is limited to BUSINESS_TYPES."""
    properties = {}
    for key in FIELD_KEYS.values():
        if key == "businessType":
            properties[key] = types.Schema(type=types.Type.STRING, enum=list(BUSINESS_TYPES))
        else:
            properties[key] = types.Schema(type=types.Type.STRING)

    return types.Schema(
        type=types.Type.OBJECT,
        properties=properties,
        required=list(REQUIRED_FIELDS)
    )


def parse_extraction_response(response_text: Optional[str]) -> ExtractionResult:
    """
    Validate and parse the JSON body returned by the service.

    Args:
        response_text: Raw response text

    Returns:
        ExtractionResult with the fields present in the response

    Raises:
        ExtractionError: If the body is empty, not JSON, not an object, or a
            field holds something other than a string
    """
    if not response_text or not response_text.strip():
        raise ExtractionError("No response from extraction service")

    try:
        data = json.loads(response_text)
    except json.JSONDecodeError as e:
        raise ExtractionError(f"Response is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ExtractionError(f"Expected a JSON object, got {type(data).__name__}")

    for key in FIELD_KEYS.values():
        value = data.get(key)
        if value is not None and not isinstance(value, str):
            raise ExtractionError(f"Field '{key}' must be a string, got {type(value).__name__}")

    return ExtractionResult.from_dict(data)


class GeminiExtractor:
    """
    Gemini-based structured extraction for business cards, signs and banners.
    """

    EXTRACTION_PROMPT = """Extract business card details. Analyze carefully for small text.

Fields: company name, address, contact person, phone number, WhatsApp number,
email, website, nature of business, business type and any notes.

Rules:
- Format phone numbers cleanly
- Detect business type based on keywords (e.g. 'Works' -> Manufacturing, 'Traders' -> Trading, 'Services' -> Service); use Other when unsure
- Extract EXACTLY what you see, don't invent information
- If a field is missing, return an empty string"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.1,
        client: Optional[genai.Client] = None
    ):
        """
        Initialize the extractor.

        Args:
            api_key: Google API key (or set GOOGLE_API_KEY / GEMINI_API_KEY)
            model: Gemini model name
            temperature: Sampling temperature
            client: Preconfigured client (mainly for tests)
        """
        self.api_key = api_key or os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
        self.model_name = model
        self.temperature = temperature
        self.client = client
        self.response_schema = build_response_schema()

        if self.client is None:
            if not self.api_key:
                logger.warning("No Gemini API key provided. Set GOOGLE_API_KEY or GEMINI_API_KEY env var")
            else:
                self.client = genai.Client(api_key=self.api_key)
                logger.info(f"Gemini extractor initialized with model: {self.model_name}")

    def is_available(self) -> bool:
        """Check if Gemini is configured."""
        return self.client is not None

    def build_request(self, image: EnhancedImage) -> Dict[str, Any]:
        """Assemble the generate_content arguments for one image."""
        return {
            "model": self.model_name,
            "contents": [
                types.Content(
                    role="user",
                    parts=[
                        types.Part.from_bytes(data=image.data, mime_type=image.mime_type),
                        types.Part.from_text(text=self.EXTRACTION_PROMPT)
                    ]
                )
            ],
            "config": types.GenerateContentConfig(
                temperature=self.temperature,
                response_mime_type="application/json",
                response_schema=self.response_schema
            )
        }

    async def extract(self, image: EnhancedImage) -> ExtractionResult:
        """
        Extract contact fields from an enhanced image.

        Args:
            image: Enhanced image payload

        Returns:
            ExtractionResult (fields may be missing or empty)

        Raises:
            ExtractionError: On transport failure or an unusable response
        """
        if not self.is_available():
            raise ExtractionError("Gemini not configured. Set GOOGLE_API_KEY environment variable.")

        if not image.data:
            raise ExtractionError("Image payload is empty")

        logger.info(f"Calling Gemini API ({self.model_name}) with {image.size_bytes} bytes")

        try:
            # Sync client in a worker thread: no HTTP state is bound to the calling loop
            response = await asyncio.to_thread(self.client.models.generate_content, **self.build_request(image))
            response_text = response.text
        except Exception as e:
            logger.error(f"Gemini extraction failed: {e}")
            raise ExtractionError(f"Extraction request failed: {e}") from e

        logger.debug(f"Gemini response: {(response_text or '')[:500]}")

        result = parse_extraction_response(response_text)
        logger.info(f"Extracted fields: {sorted(k for k, v in result.to_dict().items() if v)}")
        return result
