"""Style record helpers: slugs, variable placeholders, updates and search.

A style is a plain JSON object.  The keys below are the ones published by the
static API, so they are kept exactly as consumers expect them (``createdAt``
and ``removeBackground`` are camelCase on the wire)::

    {
        "id": "neon-noir",
        "title": "Neon Noir",
        "description": "",
        "prompt": "A {{subject}} in a rain-soaked alley, neon reflections",
        "background_prompt": "",
        "variables": ["subject"],
        "image": "images/neon-noir.webp",
        "tags": ["noir", "neon"],
        "removeBackground": false,
        "createdAt": "2026-10-19T09:30:00.000Z"
    }

Everything in this module is pure: callers pass in ``now`` so record
timestamps stay deterministic under test.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable
from datetime import datetime, timezone

_SLUG_SEPARATOR = re.compile(r"[^a-z0-9]+")
_VARIABLE = re.compile(r"\{\{(\w+)\}\}")

# Fields a client may set on create or update.
EDITABLE_FIELDS = (
    "title",
    "description",
    "prompt",
    "background_prompt",
    "variables",
    "image",
    "tags",
    "removeBackground",
)

# Fields copied into the static index (``api/styles.json``).
INDEX_FIELDS = ("id", "title", "description", "image", "tags", "createdAt")


def slugify(title: str) -> str:
    """Derive a style id from its title.

    Non-alphanumeric runs collapse into a single ``-`` and the result is
    trimmed of leading/trailing dashes.  Accented letters are not transliterated,
    so ``"Café"`` becomes ``"caf"``.

    Args:
        title: Human-readable style title.

    Returns:
        The slug, which may be empty when the title has no ASCII alphanumerics.
    """
    return _SLUG_SEPARATOR.sub("-", title.lower()).strip("-")


def extract_variables(prompt: str) -> list[str]:
    """Return placeholder names used in *prompt*, deduplicated in order."""
    return list(dict.fromkeys(_VARIABLE.findall(prompt or "")))


def render_prompt(prompt: str, values: dict[str, str] | None = None) -> str:
    """Substitute ``{{name}}`` placeholders in *prompt*.

    Placeholders without a value are replaced by their bare name so the
    rendered prompt still reads naturally (``{{subject}}`` -> ``subject``).
    """
    values = values or {}

    def _replace(match: re.Match) -> str:
        name = match.group(1)
        value = values.get(name)
        return value if value else name

    return _VARIABLE.sub(_replace, prompt or "")


def normalize_tags(tags: Iterable[str] | str | None) -> list[str]:
    """Trim tags and drop empty ones.  Accepts a comma-separated string."""
    if tags is None:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    return [tag.strip() for tag in tags if tag and tag.strip()]


def isoformat_utc(now: datetime) -> str:
    """Format *now* as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def new_style(fields: dict, now: datetime) -> dict:
    """Build a new style record from client-supplied fields.

    The id is derived from the title.  ``variables`` are detected from the
    prompt unless the client sent them explicitly, and the key is omitted
    entirely when the prompt has no placeholders.

    Args:
        fields: Editable fields (see :data:`EDITABLE_FIELDS`).  ``title`` is
            required.
        now: Creation timestamp.

    Returns:
        The new style dictionary.

    Raises:
        ValueError: If the title is blank or yields an empty slug.
    """
    title = (fields.get("title") or "").strip()
    if not title:
        raise ValueError("Title is required")

    style_id = slugify(title)
    if not style_id:
        raise ValueError(f"Title {title!r} does not produce a usable id")

    prompt = fields.get("prompt") or ""
    variables = fields.get("variables")
    if variables is None:
        variables = extract_variables(prompt)

    style: dict = {
        "id": style_id,
        "title": title,
        "description": fields.get("description") or "",
        "prompt": prompt,
    }
    if fields.get("background_prompt"):
        style["background_prompt"] = fields["background_prompt"]
    if variables:
        style["variables"] = list(variables)
    style["image"] = fields.get("image") or ""
    style["tags"] = normalize_tags(fields.get("tags"))
    if fields.get("removeBackground") is not None:
        style["removeBackground"] = bool(fields["removeBackground"])
    style["createdAt"] = isoformat_utc(now)
    return style


def apply_update(style: dict, changes: dict, now: datetime) -> dict:
    """Merge *changes* into a copy of *style*.

    Only keys present in *changes* are applied, so an explicit empty string
    clears a field while an omitted key leaves it untouched.  ``None`` values
    count as omitted.  The ``id`` and ``createdAt`` of a style never change.

    Args:
        style: The stored style.
        changes: Fields the client actually sent.
        now: Update timestamp.

    Returns:
        The updated style dictionary.
    """
    changes = {key: value for key, value in changes.items() if value is not None}
    updated = dict(style)
    for key in EDITABLE_FIELDS:
        if key not in changes:
            continue
        value = changes[key]
        if key == "tags":
            value = normalize_tags(value)
        elif key == "title":
            value = (value or "").strip() or style.get("title", "")
        updated[key] = value

    if "prompt" in changes and "variables" not in changes:
        updated["variables"] = extract_variables(updated.get("prompt") or "")

    if not updated.get("variables"):
        updated.pop("variables", None)

    updated["id"] = style["id"]
    if "createdAt" in style:
        updated["createdAt"] = style["createdAt"]
    updated["updatedAt"] = isoformat_utc(now)
    return updated


def index_entry(style: dict) -> dict:
    """Return the summary fields published in the static index."""
    return {field: style.get(field) for field in INDEX_FIELDS}


def search_styles(
    styles: list[dict],
    query: str | None = None,
    *,
    tag: str | None = None,
) -> list[dict]:
    """Filter styles by a free-text query and/or an exact tag.

    The query is matched case-insensitively against the title, description,
    prompt and tags.
    """
    results = styles

    if tag:
        wanted = tag.lower()
        results = [s for s in results if wanted in (t.lower() for t in s.get("tags") or [])]

    q = (query or "").strip().lower()
    if q:
        results = [
            s
            for s in results
            if q in (s.get("title") or "").lower()
            or q in (s.get("description") or "").lower()
            or q in (s.get("prompt") or "").lower()
            or any(q in t.lower() for t in s.get("tags") or [])
        ]

    return results


def catalog_stats(styles: list[dict]) -> dict:
    """Summarise the catalog for the admin dashboard."""
    tag_counts = Counter(tag for s in styles for tag in s.get("tags") or [])
    return {
        "total_styles": len(styles),
        "total_tags": len(tag_counts),
        "tag_counts": dict(tag_counts.most_common()),
        "with_image": sum(1 for s in styles if s.get("image")),
        "with_variables": sum(1 for s in styles if s.get("variables")),
    }
