#!/usr/bin/env python3
"""
analyzer.py
-----------
AI captioning for uploaded images through the OpenAI chat completions API.

One request per image: the image is sent inline as a data URL together
with a prompt describing the expected JSON structure. The first JSON object
found in the reply is parsed and checked for every required section.

There is no partial-result contract: anything that goes wrong (missing
API key, network error, empty reply, malformed JSON, missing sections)
surfaces as AnalysisError.

Setup:
    export OPENAI_API_KEY="your-api-key"

Usage:
    analyzer = ImageAnalyzer(config.analyzer, logger=logger)
    analysis = await analyzer.analyze(Path("cat.png").read_bytes())
    print(analysis.style.primary, analysis.tags.mood)
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import base64
import json
import re
from typing import Any, Dict, Optional

# --- Third party imports ---
import openai

# --- Local imports ---
from midweave.core.config import AnalyzerConfig
from midweave.core.exceptions import AnalysisError, ValidationError
from midweave.core.logging_manager import MidweaveLogger, safe_logger
from midweave.core.validators import DataValidator
from midweave.dataclasses.library_entry import AIAnalysis

ANALYSIS_PROMPT = """Analyze this image comprehensively and return a JSON response with the following structure:
{
  "description": "A detailed 2-3 line description of the image and its style",
  "imageType": "The type of image (e.g., Photograph, Illustration, Digital Art, 3D Render, Anime, etc.)",
  "style": {
    "primary": "main style description",
    "secondary": ["list", "of", "secondary", "styles"],
    "influences": ["artistic", "influences"]
  },
  "technical": {
    "quality": "description of image quality",
    "renderStyle": "rendering technique used",
    "detailLevel": "detail assessment",
    "lighting": "lighting description"
  },
  "colors": {
    "palette": ["#HEX1", "#HEX2", "#HEX3"],
    "mood": "color mood description",
    "contrast": "contrast assessment"
  },
  "tags": {
    "style": ["style", "related", "tags"],
    "technical": ["technical", "aspect", "tags"],
    "mood": ["mood", "related", "tags"]
  }
}"""

REQUIRED_SECTIONS = ("description", "imageType", "style", "technical", "colors", "tags")

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

_MIME_TYPES = {"JPEG": "image/jpeg", "PNG": "image/png", "WEBP": "image/webp"}


def extract_analysis(text: Optional[str]) -> Dict[str, Any]:
    """
    Pull the analysis object out of a model reply.

    Raises:
        AnalysisError: If there is no JSON object, or a section is missing
            or has the wrong type
    """
    if not text:
        raise AnalysisError("No analysis received from API")
    match = _JSON_OBJECT.search(text)
    if not match:
        raise AnalysisError("No valid JSON found in response")
    try:
        data = json.loads(match.group(0))
    except ValueError as e:
        raise AnalysisError(f"Malformed JSON in response: {e}") from e
    if not isinstance(data, dict):
        raise AnalysisError("Invalid analysis structure received")
    missing = [key for key in REQUIRED_SECTIONS if not data.get(key)]
    if missing:
        raise AnalysisError(
            f"Invalid analysis structure received (missing: {', '.join(missing)})"
        )
    malformed = [key for key in AIAnalysis.SECTIONS if not isinstance(data[key], dict)]
    if malformed:
        raise AnalysisError(
            f"Invalid analysis structure received (not objects: {', '.join(malformed)})"
        )
    return data


class ImageAnalyzer:
    """
    Captioning client.

    Attributes:
        config: Model name, token limit, temperature, API key
        client: openai.AsyncOpenAI instance (injectable for tests)
    """

    def __init__(
        self,
        config: AnalyzerConfig,
        client: Optional[openai.AsyncOpenAI] = None,
        logger: Optional[MidweaveLogger] = None,
    ) -> None:
        self.config = config
        self.logger = logger
        self._client = client

    @property
    def client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            if not self.config.api_key:
                raise AnalysisError(
                    "OpenAI API key not configured. Set OPENAI_API_KEY."
                )
            self._client = openai.AsyncOpenAI(api_key=self.config.api_key)
        return self._client

    async def analyze(self, image_bytes: bytes, filename: str = "") -> AIAnalysis:
        """
        Caption one image.

        Args:
            image_bytes: Raw JPEG, PNG or WebP data
            filename: Used in log and error messages only

        Returns:
            AIAnalysis parsed from the model reply

        Raises:
            AnalysisError: On any failure
        """
        logger = safe_logger(self.logger)
        try:
            image_format = DataValidator.validate_image_bytes(image_bytes, filename)
        except ValidationError as e:
            raise AnalysisError(f"Failed to analyze image: {e}") from e

        data_url = (
            f"data:{_MIME_TYPES.get(image_format, 'image/jpeg')};base64,"
            f"{base64.b64encode(image_bytes).decode('ascii')}"
        )

        try:
            response = await self.client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": ANALYSIS_PROMPT},
                            {"type": "image_url", "image_url": {"url": data_url}},
                        ],
                    }
                ],
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
            )
        except openai.OpenAIError as e:
            logger.log_error(e, {"operation": "analyze_image", "file": filename})
            raise AnalysisError(f"Failed to analyze image: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        analysis = AIAnalysis.from_dict(extract_analysis(content))
        logger.log_operation(
            "analyze_image",
            {"file": filename, "model": self.config.model, "imageType": analysis.image_type},
        )
        return analysis
