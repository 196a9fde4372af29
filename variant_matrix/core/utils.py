"""
Utility functions.
"""

import json
import logging
import math
import re
from typing import Any, List, Union

logger = logging.getLogger(__name__)


def parse_image_list(raw: Any, context: str = "") -> List[str]:
    """
    Parse a stored images field into a list of URLs.

    Persisted variants carry images either as a list or as a JSON-encoded
    string. Anything unparsable is logged and treated as no images.

    Args:
        raw: List, JSON string, or None
        context: Label used in the log line (e.g. "Red-S")

    Returns:
        List of image URL strings
    """
    if raw is None or raw == "":
        return []

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Error parsing variant images for {context or 'variant'}: {e}")
            return []

    if not isinstance(raw, list):
        logger.warning(f"Ignoring non-list images for {context or 'variant'}: {type(raw).__name__}")
        return []

    return [str(item) for item in raw if item]


def split_url_lines(text: str) -> List[str]:
    """
    Split newline-delimited input into trimmed, non-blank URLs.

    Example: "https://a/1.jpg\\n\\nhttps://a/2.jpg" -> two URLs
    """
    if not text:
        return []
    return [line.strip() for line in text.split("\n") if line.strip()]


def parse_number(value: Union[str, int, float, None], integer: bool = False) -> Union[int, float]:
    """
    Parse a user-entered numeric field.

    Blank input is 0. Non-numeric or non-finite input raises ValueError.

    Args:
        value: Raw value from a form field
        integer: Truncate to int (stock counts)

    Returns:
        Parsed number
    """
    if value is None:
        return 0

    if isinstance(value, bool):
        raise ValueError(f"Invalid number: {value!r}")

    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return 0
        number = float(text)

    if not math.isfinite(number):
        raise ValueError(f"Invalid number: {value!r}")

    return int(number) if integer else number


def strip_whitespace(text: str) -> str:
    """Remove all whitespace from text."""
    return re.sub(r"\s+", "", text or "")


def alphanumeric_only(text: str) -> str:
    """Keep only ASCII letters and digits."""
    return re.sub(r"[^a-zA-Z0-9]", "", text or "")
