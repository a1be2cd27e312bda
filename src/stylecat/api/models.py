"""Pydantic request models for the Stylecat API.

FastAPI uses these for request validation and OpenAPI documentation.  Style
records themselves are stored and returned as plain dictionaries so that the
JSON on disk, in the API and in the static build stay byte-for-byte alike.

Models
------
StyleCreateRequest
    Payload for ``POST /api/styles``.
StyleUpdateRequest
    Payload for ``PUT /api/styles/{id}`` — every field optional; only the
    fields actually sent are applied.
PreviewRequest
    Payload for ``POST /api/styles/{id}/preview``.
BatchPreviewRequest
    Payload for ``POST /api/previews``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _StyleFields(BaseModel):
    """Editable style fields shared by create and update payloads."""

    model_config = ConfigDict(populate_by_name=True)

    description: str | None = Field(
        default=None,
        description="Human-readable description of the visual style.",
    )
    prompt: str | None = Field(
        default=None,
        description="Prompt template; may contain {{variable}} placeholders.",
    )
    background_prompt: str | None = Field(
        default=None,
        description="Prompt describing only the background/environment.",
    )
    variables: list[str] | None = Field(
        default=None,
        description="Placeholder names; detected from the prompt when omitted.",
    )
    image: str | None = Field(
        default=None,
        description="Preview image, either 'images/<file>' or an absolute URL.",
    )
    tags: list[str] | None = Field(
        default=None,
        description="Free-form tags.",
    )
    remove_background: bool | None = Field(
        default=None,
        alias="removeBackground",
        description="Whether consumers should strip the generated background.",
    )

    def to_fields(self) -> dict:
        """Return the non-null fields the client sent, keyed by their wire names."""
        return self.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)


class StyleCreateRequest(_StyleFields):
    """Request body for ``POST /api/styles``.

    ``title`` is optional at the schema level so that a missing title yields
    the API's own 400 response instead of a generic 422.
    """

    title: str | None = Field(
        default=None,
        description="Style title; the style id is derived from it.",
    )


class StyleUpdateRequest(_StyleFields):
    """Request body for ``PUT /api/styles/{id}``."""

    title: str | None = Field(
        default=None,
        description="New title.  The style id does not change.",
    )


class PreviewRequest(BaseModel):
    """Request body for ``POST /api/styles/{id}/preview``."""

    values: dict[str, str] = Field(
        default_factory=dict,
        description="Values substituted for {{variable}} placeholders.",
    )


class BatchPreviewRequest(BaseModel):
    """Request body for ``POST /api/previews``.

    Attributes:
        ids: Styles to render.  ``None`` means the whole catalog.
        only_missing: Skip styles that already have an image.
        batch_size: Concurrent predictions per batch; defaults to the
            configured ``preview_batch_size``.
    """

    ids: list[str] | None = Field(
        default=None,
        description="Style ids to render (default: all).",
    )
    only_missing: bool = Field(
        default=True,
        description="Only render styles without an image.",
    )
    batch_size: int | None = Field(
        default=None,
        ge=1,
        le=16,
        description="Concurrent predictions per batch (1-16).",
    )
