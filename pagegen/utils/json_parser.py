import json
from typing import Any, Dict, List, Union

from pagegen.utils.logging import get_logger

LOGGER = get_logger(__name__)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ```)."""
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]

    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]

    return cleaned.strip()


def parse_json_safely(text: str) -> Union[Dict[str, Any], List[Any], None]:
    """Parse JSON from LLM output, handling common formatting issues.

    Handles:
    - Markdown code blocks (```json ... ```)
    - Leading/trailing whitespace
    - Prose before the JSON value
    - Trailing text after the first complete value

    Args:
        text: The text containing JSON

    Returns:
        Parsed JSON value or None if parsing fails
    """
    if not text:
        return None

    cleaned_text = strip_code_fences(text)

    try:
        return json.loads(cleaned_text)
    except json.JSONDecodeError as e:
        LOGGER.warning(f"Initial JSON parse failed: {e}, attempting repairs...")

    # Decode the first complete value starting at the first { or [
    decoder = json.JSONDecoder()
    starts = sorted(
        pos for pos in (cleaned_text.find("{"), cleaned_text.find("[")) if pos != -1
    )
    for start in starts:
        try:
            value, _ = decoder.raw_decode(cleaned_text, start)
            LOGGER.info(f"Parsed JSON value starting at position {start}")
            return value
        except json.JSONDecodeError:
            continue

    LOGGER.error("Failed to parse JSON from LLM output")
    return None
