"""Static JSON API generation.

The public catalog is served from a CDN as plain files, regenerated from the
source ``styles.json`` after every change::

    api/
    ├── styles.json          # index: id, title, description, image, tags, createdAt
    └── styles/
        ├── neon-noir.json   # full record
        └── ...

The module doubles as the ``stylecat-build`` console script.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from stylecat.core.catalog import index_entry
from stylecat.core.style_store import load_styles

logger = logging.getLogger(__name__)

INDEX_FILENAME = "styles.json"
STYLES_SUBDIR = "styles"


@dataclass
class BuildReport:
    """Outcome of a static API build."""

    count: int
    written: list[Path] = field(default_factory=list)
    removed: list[Path] = field(default_factory=list)


def _write_json(path: Path, data) -> None:
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(data, handle, indent=2, ensure_ascii=False)
        handle.write("\n")


def build_static_api(styles: list[dict], api_dir: Path) -> BuildReport:
    """Regenerate the static API tree from *styles*.

    Per-style files that no longer correspond to a catalog entry are removed,
    which covers both deleted styles and files left behind by hand edits.

    Args:
        styles: The full catalog in publication order.
        api_dir: Root of the static API tree.

    Returns:
        A :class:`BuildReport` listing written and removed files.
    """
    styles_dir = api_dir / STYLES_SUBDIR
    styles_dir.mkdir(parents=True, exist_ok=True)

    report = BuildReport(count=len(styles))

    index_path = api_dir / INDEX_FILENAME
    _write_json(index_path, [index_entry(style) for style in styles])
    report.written.append(index_path)

    keep: set[str] = set()
    for style in styles:
        keep.add(style["id"])
        path = styles_dir / f"{style['id']}.json"
        _write_json(path, style)
        report.written.append(path)

    for stale in sorted(styles_dir.glob("*.json")):
        if stale.stem not in keep and remove_style_file(api_dir, stale.stem):
            report.removed.append(stale)
            logger.info("Removed stale %s", stale)

    logger.debug("Static API built: %d styles in %s", report.count, api_dir)
    return report


def remove_style_file(api_dir: Path, style_id: str) -> bool:
    """Delete ``api/styles/{style_id}.json``.  Returns whether it existed."""
    path = api_dir / STYLES_SUBDIR / f"{style_id}.json"
    if path.exists():
        path.unlink()
        return True
    return False


def main() -> None:
    """Rebuild the static API from the configured catalog.

    Registered as the ``stylecat-build`` console script in ``pyproject.toml``.
    """
    from stylecat.core.config import config

    logging.basicConfig(level=logging.INFO, format="%(message)s")

    styles = load_styles(config.styles_file)
    report = build_static_api(styles, config.api_dir)

    for path in report.written:
        logger.info("wrote %s", path)
    logger.info("Build finished: %d style(s) generated.", report.count)


if __name__ == "__main__":
    main()
