"""Batched preview generation for style presets.

Each style's prompt is rendered (placeholders replaced by their names or by
caller-supplied values), sent to an image model, and the first generated image
is saved next to uploaded images as ``<id>-preview.<format>``.

Styles are processed in consecutive batches.  All predictions inside a batch
run concurrently; the next batch starts once the previous one has settled.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from stylecat.core.catalog import render_prompt
from stylecat.core.replicate import ReplicateClient, ReplicateError
from stylecat.core.uploads import store_image

logger = logging.getLogger(__name__)


@dataclass
class PreviewResult:
    """Outcome of a preview request for one style."""

    id: str
    image: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _first_url(output) -> str | None:
    if isinstance(output, str):
        return output
    if isinstance(output, list):
        for item in output:
            if isinstance(item, str) and item:
                return item
    if isinstance(output, dict):
        for key in ("url", "image", "output"):
            if isinstance(output.get(key), str):
                return output[key]
    return None


async def generate_preview(
    client: ReplicateClient,
    style: dict,
    images_dir: Path,
    *,
    model: str,
    aspect_ratio: str = "1:1",
    output_format: str = "webp",
    values: dict[str, str] | None = None,
) -> str:
    """Render a single preview image for *style*.

    Args:
        client: Configured Replicate client.
        style: The style record.  Only ``id`` and ``prompt`` are read.
        images_dir: Destination directory.
        model: Replicate image model slug.
        aspect_ratio: Aspect ratio passed to the model.
        output_format: Image format requested from the model.
        values: Optional placeholder values.

    Returns:
        The relative ``images/...`` path of the saved preview.

    Raises:
        ValueError: If the style has no prompt.
        ReplicateError: If the prediction or the download fails.
    """
    prompt = render_prompt(style.get("prompt") or "", values).strip()
    if not prompt:
        raise ValueError(f"Style {style['id']!r} has no prompt")

    output = await client.run(
        model,
        {
            "prompt": prompt,
            "aspect_ratio": aspect_ratio,
            "output_format": output_format,
            "num_outputs": 1,
        },
    )
    url = _first_url(output)
    if not url:
        raise ReplicateError(f"{model} returned no image for {style['id']!r}")

    data = await client.download(url)
    stored = store_image(images_dir, f"{style['id']}-preview.{output_format}", data)
    return stored["url"]


async def _safe_preview(client: ReplicateClient, style: dict, images_dir: Path, **kwargs) -> PreviewResult:
    try:
        image = await generate_preview(client, style, images_dir, **kwargs)
    except (ValueError, ReplicateError) as exc:
        logger.warning("Preview failed for %s: %s", style.get("id"), exc)
        return PreviewResult(id=style["id"], error=str(exc))
    return PreviewResult(id=style["id"], image=image)


async def generate_previews(
    client: ReplicateClient,
    styles: list[dict],
    images_dir: Path,
    *,
    model: str,
    batch_size: int = 4,
    aspect_ratio: str = "1:1",
    output_format: str = "webp",
) -> list[PreviewResult]:
    """Generate previews for *styles* in batches of *batch_size*.

    A failing style does not abort its batch; its error is recorded in the
    returned :class:`PreviewResult`.

    Returns:
        One result per input style, in input order.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    results: list[PreviewResult] = []
    for start in range(0, len(styles), batch_size):
        batch = styles[start : start + batch_size]
        logger.info(
            "Preview batch %d: %s",
            start // batch_size + 1,
            ", ".join(s["id"] for s in batch),
        )
        results.extend(
            await asyncio.gather(
                *(
                    _safe_preview(
                        client,
                        style,
                        images_dir,
                        model=model,
                        aspect_ratio=aspect_ratio,
                        output_format=output_format,
                    )
                    for style in batch
                )
            )
        )
    return results
