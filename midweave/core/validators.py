#!/usr/bin/env python3
"""
validators.py
--------------------
Data validation and normalization utilities.

Provides type-safe conversion, range clamping and upload checks used by
the entry parser, the storage facade and the CLI.
"""
from __future__ import annotations

from io import BytesIO
from typing import Any, Dict, List, Optional, Tuple, Union

from PIL import Image, UnidentifiedImageError

from .exceptions import ValidationError

# Documented ranges for numeric Midjourney parameters
PARAMETER_LIMITS: Dict[str, Tuple[Union[int, float], Union[int, float]]] = {
    "chaos": (0, 100),
    "weird": (0, 3000),
    "stop": (10, 100),
    "quality": (0.25, 2),
    "stylize": (0, 1000),
}

MAX_IMAGE_BYTES = 5 * 1024 * 1024
ALLOWED_IMAGE_FORMATS = {"JPEG", "PNG", "WEBP"}


class DataValidator:
    """Centralized data validation for entries and uploads."""

    @staticmethod
    def validate_required_fields(
        data: Dict[str, Any], required_fields: List[str]
    ) -> None:
        """
        Validate that required fields are present and non-empty.

        Args:
            data: Data dictionary to validate
            required_fields: List of required field names

        Raises:
            ValidationError: If validation fails
        """
        for field in required_fields:
            if field not in data or not data[field]:
                raise ValidationError(f"Required field '{field}' missing or empty")

    @staticmethod
    def normalize_string(value: Any) -> Optional[str]:
        """
        Normalize string value.

        Args:
            value: Value to normalize

        Returns:
            Stripped string, or None for empty/missing values
        """
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @staticmethod
    def normalize_bool(value: Any) -> Optional[bool]:
        """
        Convert various inputs to boolean.

        Args:
            value: Value to convert

        Returns:
            Boolean value or None

        Raises:
            ValidationError: If conversion fails
        """
        if isinstance(value, bool):
            return value
        elif isinstance(value, (int, float)):
            if value == 0:
                return False
            elif value == 1:
                return True
            raise ValidationError(f"Cannot convert numeric '{value}' to boolean")
        elif isinstance(value, str):
            if value.lower() in ("true", "1", "yes", "on"):
                return True
            elif value.lower() in ("false", "0", "no", "off"):
                return False
            raise ValidationError(f"Cannot convert '{value}' to boolean")
        elif value is not None:
            return bool(value)
        return None

    @staticmethod
    def normalize_int(value: Any) -> Optional[int]:
        """
        Convert value to integer safely.

        Returns:
            Integer value, or None when missing or not numeric
        """
        if value is None or isinstance(value, bool):
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None

    @staticmethod
    def normalize_float(value: Any) -> Optional[float]:
        """
        Convert value to float safely.

        Returns:
            Float value, or None when missing or not numeric
        """
        if value is None or isinstance(value, bool):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def normalize_string_list(value: Any) -> List[str]:
        """
        Coerce a scalar or sequence into a list of non-empty strings.

        Args:
            value: None, a string, or an iterable of values

        Returns:
            List of stripped, non-empty strings
        """
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple, set)):
            return []
        return [str(item).strip() for item in value if str(item).strip()]

    @staticmethod
    def clamp_parameter(name: str, value: Union[int, float]) -> Union[int, float]:
        """
        Clamp a numeric Midjourney parameter into its documented range.

        Args:
            name: Parameter name ('chaos', 'weird', 'stop', 'quality', 'stylize')
            value: Raw numeric value

        Returns:
            Value limited to the parameter's range; unknown names pass through

        Examples:
            >>> DataValidator.clamp_parameter("chaos", 250)
            100
            >>> DataValidator.clamp_parameter("quality", 0.1)
            0.25
        """
        limits = PARAMETER_LIMITS.get(name)
        if limits is None:
            return value
        low, high = limits
        return max(low, min(high, value))

    @staticmethod
    def validate_image_bytes(data: bytes, filename: str = "") -> str:
        """
        Check that an upload is a supported image within the size limit.

        Args:
            data: Raw file contents
            filename: Original filename, used in error messages

        Returns:
            The detected image format ('JPEG', 'PNG' or 'WEBP')

        Raises:
            ValidationError: If the file is too large or not a supported image
        """
        label = filename or "upload"
        if len(data) > MAX_IMAGE_BYTES:
            raise ValidationError(f"{label}: File size must be less than 5MB")
        try:
            with Image.open(BytesIO(data)) as img:
                image_format = img.format
        except (UnidentifiedImageError, OSError) as e:
            raise ValidationError(f"{label}: not a readable image ({e})")
        if image_format not in ALLOWED_IMAGE_FORMATS:
            raise ValidationError(
                f"{label}: File must be a JPEG, PNG, or WebP image (got {image_format})"
            )
        return image_format
