"""Catalog storage helpers for the Stylecat API.

This module isolates the ``styles.json`` persistence logic from
``stylecat.api.main`` so route handlers can focus on HTTP concerns while the
file-backed store remains testable as a small unit.

The store is intentionally simple:

- the whole catalog lives in a single ``styles.json`` array
- every write rewrites the file in full
- list order is insertion order, which is also the order of the static index

Unlike a cache, the catalog is the source of truth.  A file that exists but
cannot be parsed is reported as an error rather than treated as empty, so a
later write never overwrites hand-edited data with an empty list.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

# Ids become file names under api/styles/.
_VALID_ID = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]*")


class CatalogFileError(Exception):
    """Raised when ``styles.json`` exists but is not a JSON array."""


def load_styles(styles_file: Path) -> list[dict]:
    """Load the catalog from disk.

    Args:
        styles_file: Path to ``styles.json``.

    Returns:
        The style dictionaries in persisted order.  A missing file yields an
        empty catalog.  Items that are not objects, or whose ``id`` is not a
        usable file name, are skipped with a warning.

    Raises:
        CatalogFileError: If the file is not valid JSON or not a list.
    """
    if not styles_file.exists():
        return []

    try:
        with open(styles_file, encoding="utf-8") as handle:
            raw = json.load(handle)
    except json.JSONDecodeError as exc:
        raise CatalogFileError(f"{styles_file} is not valid JSON: {exc}") from exc

    if not isinstance(raw, list):
        raise CatalogFileError(f"{styles_file} must contain a JSON array")

    styles = [
        entry
        for entry in raw
        if isinstance(entry, dict) and isinstance(entry.get("id"), str) and _VALID_ID.fullmatch(entry["id"])
    ]
    if len(styles) != len(raw):
        logger.warning("Skipped %d malformed entries in %s", len(raw) - len(styles), styles_file)
    return styles


def save_styles(styles_file: Path, styles: list[dict]) -> None:
    """Persist the catalog to disk.

    The list is written to a sibling temp file first and then moved into
    place, so readers never observe a half-written catalog.

    Args:
        styles_file: Path to ``styles.json``.
        styles: Style dictionaries to persist.
    """
    styles_file.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=styles_file.parent, prefix=".styles-", suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(styles, handle, indent=2, ensure_ascii=False)
            handle.write("\n")
        os.replace(tmp_name, styles_file)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def find_style(styles: list[dict], style_id: str) -> tuple[int, dict | None]:
    """Locate a style by id.

    Returns:
        ``(index, style)``, or ``(-1, None)`` when no style has that id.
    """
    for index, style in enumerate(styles):
        if style.get("id") == style_id:
            return index, style
    return -1, None
