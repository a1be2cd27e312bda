"""Reverse-engineer a style preset from a reference image."""

from __future__ import annotations

import base64
import logging

from stylecat.core.model_output import join_output, parse_analysis
from stylecat.core.replicate import ReplicateClient

logger = logging.getLogger(__name__)

ANALYZE_PROMPT = """Analyze this image and return ONLY a valid JSON object with these fields:
- "title": a short catchy title for this visual style (in {language})
- "description": a detailed description of the visual style (2-3 sentences, in {language})
- "prompt": an English prompt to reproduce this style in an AI image generator. Use variables in double curly braces for customizable elements (e.g. {{{{subject}}}}, {{{{color}}}}, {{{{mood}}}})
- "background_prompt": an English prompt describing only the background/environment of the image, without the main subject
- "tags": an array of 3 to 6 relevant tags (English, lowercase)

Return ONLY the raw JSON object. No markdown, no code fences, no explanation."""


def to_data_uri(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


async def analyze_image(
    client: ReplicateClient,
    data: bytes,
    mime_type: str,
    *,
    model: str,
    language: str = "French",
) -> dict:
    """Ask a vision model to describe the style of an image.

    Args:
        client: Configured Replicate client.
        data: Raw image bytes.
        mime_type: MIME type of *data*, used for the data URI.
        model: Replicate model slug (``owner/name``).
        language: Language for the generated title and description.

    Returns:
        Parsed fields, see :func:`~stylecat.core.model_output.parse_analysis`.

    Raises:
        ReplicateError: If the prediction fails.
        ModelOutputError: If the answer holds no usable JSON.
    """
    output = await client.run(
        model,
        {
            "prompt": ANALYZE_PROMPT.format(language=language),
            "image": to_data_uri(data, mime_type),
        },
    )
    logger.debug("Raw analysis output from %s:\n%s", model, join_output(output))
    return parse_analysis(output)
