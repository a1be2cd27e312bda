"""Stylecat — FastAPI Application.

This module is the single entry point for the admin service.  It defines the
FastAPI ``app`` instance, all REST API routes, and the ``main()`` CLI function
that launches the uvicorn server.

Architecture
------------
The application follows a stateless REST pattern:

- **The catalog** is a single ``data/styles.json`` file, read and rewritten in
  full on every request — no database required.
- **The static API** (``api/styles.json`` and ``api/styles/{id}.json``) is
  regenerated after every write so it is always publishable.
- **AI features** (image analysis, preview generation) call Replicate through
  a :class:`~stylecat.core.replicate.ReplicateClient` created at startup.
  They answer 503 when no token is configured.
- **Publishing** commits and pushes the working tree with git.
- **Uploaded images** are served by FastAPI's ``StaticFiles`` at ``/images``.

Endpoints
---------
========  ============================  ====================================
Method    Path                          Purpose
========  ============================  ====================================
GET       ``/api/styles``               List styles (``q`` / ``tag`` filters)
GET       ``/api/styles/{id}``          Single style
POST      ``/api/styles``               Create a style
PUT       ``/api/styles/{id}``          Partially update a style
DELETE    ``/api/styles/{id}``          Delete a style and its image
POST      ``/api/styles/{id}/preview``  Generate a preview image
POST      ``/api/previews``             Batch preview generation
POST      ``/api/upload``               Upload an image
POST      ``/api/analyze``              Derive style fields from an image
POST      ``/api/build``                Regenerate the static API
POST      ``/api/push``                 Build, commit and push
GET       ``/api/stats``                Catalog statistics
========  ============================  ====================================

Usage
-----
CLI (installed entry point)::

    stylecat

Direct invocation::

    python -m stylecat.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from stylecat import __version__
from stylecat.api.models import (
    BatchPreviewRequest,
    PreviewRequest,
    StyleCreateRequest,
    StyleUpdateRequest,
)
from stylecat.core.analyzer import analyze_image
from stylecat.core.catalog import apply_update, catalog_stats, new_style, search_styles
from stylecat.core.config import config
from stylecat.core.model_output import ModelOutputError
from stylecat.core.previews import generate_preview, generate_previews
from stylecat.core.publisher import PublishError, publish
from stylecat.core.replicate import ReplicateClient, ReplicateError, ReplicateNotConfigured
from stylecat.core.static_api import build_static_api
from stylecat.core.style_store import CatalogFileError, find_style, load_styles, save_styles
from stylecat.core.uploads import (
    InvalidImageError,
    inspect_image,
    remove_local_image,
    resolve_local_image,
    sanitize_filename,
    store_image,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Resolve paths from the global configuration instance.
# ---------------------------------------------------------------------------
STYLES_FILE: Path = config.styles_file
API_DIR: Path = config.api_dir
IMAGES_DIR: Path = config.images_dir
REPO_DIR: Path = config.repo_dir


# ---------------------------------------------------------------------------
# Application lifecycle: Replicate client setup and teardown.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the shared Replicate client and close it on shutdown."""
    app.state.replicate = ReplicateClient(
        config.replicate_api_token,
        config.replicate_api_base,
        poll_interval=config.poll_interval,
        timeout=config.request_timeout,
    )
    if not config.ai_enabled:
        logger.warning("No Replicate token configured; analysis and previews are disabled.")

    yield

    await app.state.replicate.aclose()


# ---------------------------------------------------------------------------
# FastAPI application instance.
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Stylecat",
    description="Admin API for a catalog of AI image-generation style presets.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/images", StaticFiles(directory=str(IMAGES_DIR)), name="images")


@app.exception_handler(CatalogFileError)
async def catalog_file_error_handler(request: Request, exc: CatalogFileError) -> JSONResponse:
    logger.error("Catalog file is unreadable: %s", exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Helpers.
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _persist(styles: list[dict]) -> None:
    """Save the catalog and regenerate the static API from it."""
    save_styles(STYLES_FILE, styles)
    build_static_api(styles, API_DIR)


def _get_or_404(styles: list[dict], style_id: str) -> tuple[int, dict]:
    index, style = find_style(styles, style_id)
    if style is None:
        raise HTTPException(status_code=404, detail="Style not found")
    return index, style


def _replicate(request: Request) -> ReplicateClient:
    """Return the shared Replicate client, or 503 when AI is disabled."""
    client: ReplicateClient = request.app.state.replicate
    if not client.is_configured:
        raise HTTPException(status_code=503, detail="Replicate API token is not configured")
    return client


# ---------------------------------------------------------------------------
# Style CRUD routes.
# ---------------------------------------------------------------------------


@app.get("/api/styles")
async def list_styles(q: str | None = None, tag: str | None = None) -> list[dict]:
    """Return every style, optionally filtered.

    Args:
        q: Case-insensitive text matched against title, description, prompt
            and tags.
        tag: Exact (case-insensitive) tag filter.
    """
    return search_styles(load_styles(STYLES_FILE), q, tag=tag)


@app.get("/api/styles/{style_id}")
async def get_style(style_id: str) -> dict:
    """Return a single style by id.

    Raises:
        HTTPException: 404 if the style is not found.
    """
    _, style = _get_or_404(load_styles(STYLES_FILE), style_id)
    return style


@app.post("/api/styles", status_code=201)
async def create_style(req: StyleCreateRequest) -> dict:
    """Create a style whose id is the slug of its title.

    Raises:
        HTTPException: 400 when the title is missing or unusable, 409 when a
            style with the same id already exists.
    """
    styles = load_styles(STYLES_FILE)
    fields = req.to_fields()
    fields["title"] = req.title

    try:
        style = new_style(fields, _now())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    if find_style(styles, style["id"])[1] is not None:
        raise HTTPException(
            status_code=409,
            detail=f'A style with id "{style["id"]}" already exists',
        )

    styles.append(style)
    _persist(styles)
    logger.info("Created style %s", style["id"])
    return style


@app.put("/api/styles/{style_id}")
async def update_style(style_id: str, req: StyleUpdateRequest) -> dict:
    """Apply the fields present in the request to an existing style.

    Raises:
        HTTPException: 404 if the style is not found.
    """
    styles = load_styles(STYLES_FILE)
    index, style = _get_or_404(styles, style_id)

    styles[index] = apply_update(style, req.to_fields(), _now())
    _persist(styles)
    logger.info("Updated style %s", style_id)
    return styles[index]


@app.delete("/api/styles/{style_id}")
async def delete_style(style_id: str) -> dict:
    """Delete a style and its local image.

    The rebuild that follows the save drops the style's static API file.

    Raises:
        HTTPException: 404 if the style is not found.
    """
    styles = load_styles(STYLES_FILE)
    index, _ = _get_or_404(styles, style_id)

    deleted = styles.pop(index)
    _persist(styles)
    if deleted.get("image"):
        remove_local_image(IMAGES_DIR, deleted["image"])

    logger.info("Deleted style %s", style_id)
    return {"message": f'Style "{deleted["title"]}" deleted', "style": deleted}


# ---------------------------------------------------------------------------
# Image routes.
# ---------------------------------------------------------------------------


@app.post("/api/upload")
async def upload_image(image: UploadFile | None = File(None)) -> dict:
    """Store an uploaded image under ``images/``.

    Returns:
        ``{"url": "images/<name>", "filename": "<name>"}``.

    Raises:
        HTTPException: 400 when no file is sent or it is not an image.
    """
    if image is None:
        raise HTTPException(status_code=400, detail="No image provided")

    data = await image.read()
    try:
        ext, _ = inspect_image(data)
    except InvalidImageError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    filename = sanitize_filename(image.filename or "", default_ext=ext)
    return store_image(IMAGES_DIR, filename, data)


@app.post("/api/analyze")
async def analyze(
    request: Request,
    image: UploadFile | None = File(None),
    image_path: str | None = Form(None),
) -> dict:
    """Derive title, description, prompt and tags from an image.

    Accepts either a multipart ``image`` upload or an ``image_path`` form
    field referencing an already uploaded ``images/...`` file.

    Raises:
        HTTPException: 400 for missing or invalid input, 404 for an unknown
            ``image_path``, 503 when Replicate is not configured, 502 when the
            model fails or answers without usable JSON.
    """
    if image is not None:
        data = await image.read()
    elif image_path:
        try:
            data = resolve_local_image(IMAGES_DIR, image_path).read_bytes()
        except FileNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
    else:
        raise HTTPException(status_code=400, detail="No image provided")

    try:
        _, mime_type = inspect_image(data)
    except InvalidImageError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    client = _replicate(request)
    try:
        return await analyze_image(
            client,
            data,
            mime_type,
            model=config.analyze_model,
            language=config.analysis_language,
        )
    except ReplicateNotConfigured as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except (ReplicateError, ModelOutputError) as exc:
        logger.exception("Image analysis failed")
        raise HTTPException(status_code=502, detail=f"Analysis error: {exc}") from exc


# ---------------------------------------------------------------------------
# Preview routes.
# ---------------------------------------------------------------------------


@app.post("/api/styles/{style_id}/preview")
async def create_preview(
    style_id: str,
    request: Request,
    req: PreviewRequest | None = None,
) -> dict:
    """Generate a preview image and store it as the style's ``image``.

    Raises:
        HTTPException: 404 for an unknown style, 400 when it has no prompt,
            503 when Replicate is not configured, 502 when generation fails.
    """
    _, style = _get_or_404(load_styles(STYLES_FILE), style_id)
    client = _replicate(request)

    try:
        image = await generate_preview(
            client,
            style,
            IMAGES_DIR,
            model=config.preview_model,
            aspect_ratio=config.preview_aspect_ratio,
            values=req.values if req else None,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ReplicateError as exc:
        raise HTTPException(status_code=502, detail=f"Preview error: {exc}") from exc

    # The catalog may have changed while the prediction was running.
    styles = load_styles(STYLES_FILE)
    index, current = _get_or_404(styles, style_id)
    styles[index] = apply_update(current, {"image": image}, _now())
    _persist(styles)
    return styles[index]


@app.post("/api/previews")
async def create_previews(request: Request, req: BatchPreviewRequest) -> dict:
    """Generate previews for many styles in concurrent batches.

    Returns:
        Dictionary with ``results`` (one ``{id, image, error}`` per style),
        ``not_found`` (unknown ids) and ``updated`` (number of styles whose
        image changed).
    """
    client = _replicate(request)
    styles = load_styles(STYLES_FILE)

    not_found: list[str] = []
    if req.ids is None:
        targets = list(styles)
    else:
        targets = []
        for style_id in dict.fromkeys(req.ids):
            _, style = find_style(styles, style_id)
            if style is None:
                not_found.append(style_id)
            else:
                targets.append(style)

    if req.only_missing:
        targets = [s for s in targets if not s.get("image")]

    results = await generate_previews(
        client,
        targets,
        IMAGES_DIR,
        model=config.preview_model,
        batch_size=req.batch_size or config.preview_batch_size,
        aspect_ratio=config.preview_aspect_ratio,
    )

    styles = load_styles(STYLES_FILE)
    now = _now()
    updated = 0
    for result in results:
        if not result.ok:
            continue
        index, current = find_style(styles, result.id)
        if current is None:
            continue
        styles[index] = apply_update(current, {"image": result.image}, now)
        updated += 1
    if updated:
        _persist(styles)

    return {
        "results": [{"id": r.id, "image": r.image, "error": r.error} for r in results],
        "not_found": not_found,
        "updated": updated,
    }


# ---------------------------------------------------------------------------
# Build and publish routes.
# ---------------------------------------------------------------------------


@app.post("/api/build")
async def build() -> dict:
    """Regenerate the static API tree from the catalog."""
    styles = load_styles(STYLES_FILE)
    report = build_static_api(styles, API_DIR)
    return {"message": f"API rebuilt ({report.count} styles)", "count": report.count}


@app.post("/api/push")
async def push() -> dict:
    """Rebuild the static API, then commit and push the working tree.

    Raises:
        HTTPException: 500 if a git command fails.
    """
    styles = load_styles(STYLES_FILE)
    build_static_api(styles, API_DIR)

    try:
        result = await run_in_threadpool(publish, REPO_DIR)
    except PublishError as exc:
        logger.error("Push failed: %s", exc)
        raise HTTPException(status_code=500, detail=f"Push error: {exc}") from exc

    message = (
        f"Published ({len(styles)} styles), available on the CDN in a few minutes"
        if result.committed
        else result.message
    )
    return {"message": message, "committed": result.committed, "count": len(styles)}


@app.get("/api/stats")
async def get_stats() -> dict:
    """Return catalog statistics (totals, tag counts, coverage)."""
    return catalog_stats(load_styles(STYLES_FILE))


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~stylecat.core.config.config` (which
    loads from ``STYLECAT_SERVER_HOST`` and ``STYLECAT_SERVER_PORT``
    environment variables).  Defaults to ``0.0.0.0:3000``.

    Registered as the ``stylecat`` console script in ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger.info("Stylecat admin API on http://localhost:%d/api/styles", config.server_port)

    uvicorn.run(
        "stylecat.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
