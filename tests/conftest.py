"""Shared pytest fixtures for Stylecat tests."""

import io
import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import httpx
import pytest
from PIL import Image

# The global config is created at import time and creates its directories.
# Point it at a scratch location before any stylecat module is imported.
_SCRATCH = Path(tempfile.mkdtemp(prefix="stylecat-tests-"))
for _name in ("data", "api", "images"):
    os.environ.setdefault(f"STYLECAT_{_name.upper()}_DIR", str(_SCRATCH / _name))
os.environ.setdefault("STYLECAT_REPO_DIR", str(_SCRATCH))

from stylecat.core.config import StylecatConfig  # noqa: E402
from stylecat.core.replicate import ReplicateClient  # noqa: E402
from stylecat.core.style_store import save_styles  # noqa: E402

ANALYZE_MODEL = "google/gemini-3-pro"
PREVIEW_MODEL = "black-forest-labs/flux-schnell"


def make_image_bytes(fmt: str = "PNG", size: tuple[int, int] = (8, 8)) -> bytes:
    """Encode a tiny solid-colour image."""
    buffer = io.BytesIO()
    Image.new("RGB", size, (200, 40, 90)).save(buffer, format=fmt)
    return buffer.getvalue()


class FakeReplicate:
    """In-memory stand-in for the Replicate HTTP API.

    Attributes:
        outputs: Model slug -> ``output`` returned by succeeded predictions.
        fail_prompts: Predictions whose prompt contains any of these strings
            end with status ``failed``.
        polls_before_success: Number of ``processing`` polls before a
            prediction succeeds (0 = succeeds on creation).
        requests: Every request received, in order.
    """

    def __init__(self, image_bytes: bytes):
        self.image_bytes = image_bytes
        self.outputs: dict[str, object] = {}
        self.fail_prompts: set[str] = set()
        self.polls_before_success = 0
        self.requests: list[httpx.Request] = []
        self._predictions: dict[str, dict] = {}
        self._remaining_polls: dict[str, int] = {}

    def created(self, model: str | None = None) -> list[dict]:
        """Return the JSON bodies of prediction-creation requests."""
        bodies = []
        for request in self.requests:
            if request.method == "POST" and request.url.path.endswith("/predictions"):
                if model is None or f"/models/{model}/" in request.url.path:
                    bodies.append(json.loads(request.content))
        return bodies

    def _output_for(self, model: str, prediction_id: str):
        if model in self.outputs:
            return self.outputs[model]
        return [f"https://replicate.delivery/{prediction_id}/out-0.webp"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.url.host == "replicate.delivery":
            return httpx.Response(200, content=self.image_bytes, headers={"content-type": "image/webp"})

        if request.method == "POST" and path.startswith("/v1/models/") and path.endswith("/predictions"):
            model = path[len("/v1/models/") : -len("/predictions")]
            body = json.loads(request.content)
            prediction_id = f"pred-{len(self._predictions) + 1}"
            prediction = {
                "id": prediction_id,
                "model": model,
                "urls": {"get": f"https://api.replicate.com/v1/predictions/{prediction_id}"},
            }
            if any(marker in body["input"].get("prompt", "") for marker in self.fail_prompts):
                prediction.update(status="failed", error="Prediction failed: content flagged")
            elif self.polls_before_success:
                prediction.update(status="starting")
                self._remaining_polls[prediction_id] = self.polls_before_success
            else:
                prediction.update(status="succeeded", output=self._output_for(model, prediction_id))
            self._predictions[prediction_id] = prediction
            return httpx.Response(201, json=prediction)

        if request.method == "GET" and path.startswith("/v1/predictions/"):
            prediction_id = path.rsplit("/", 1)[-1]
            prediction = self._predictions.get(prediction_id)
            if prediction is None:
                return httpx.Response(404, json={"detail": "Not found"})
            remaining = self._remaining_polls.get(prediction_id, 0)
            if remaining > 1:
                self._remaining_polls[prediction_id] = remaining - 1
                prediction["status"] = "processing"
            else:
                self._remaining_polls.pop(prediction_id, None)
                prediction["status"] = "succeeded"
                prediction["output"] = self._output_for(prediction["model"], prediction_id)
            return httpx.Response(200, json=prediction)

        return httpx.Response(404, json={"detail": f"Unhandled {request.method} {path}"})


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> StylecatConfig:
    """Create a test configuration rooted in a temporary directory."""
    return StylecatConfig(
        _env_file=None,
        repo_dir=str(temp_dir),
        data_dir=str(temp_dir / "data"),
        api_dir=str(temp_dir / "api"),
        images_dir=str(temp_dir / "images"),
        replicate_api_token="test-token",
        preview_batch_size=2,
    )


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes("PNG")


@pytest.fixture
def fake_replicate(png_bytes: bytes) -> FakeReplicate:
    return FakeReplicate(png_bytes)


@pytest.fixture
def replicate_client(fake_replicate: FakeReplicate) -> ReplicateClient:
    """A Replicate client wired to :class:`FakeReplicate` with no poll delay."""
    return ReplicateClient(
        "test-token",
        poll_interval=0.0,
        timeout=5.0,
        transport=httpx.MockTransport(fake_replicate.handler),
    )


@pytest.fixture
def sample_styles() -> list[dict]:
    """Three catalog entries covering images, variables and tags."""
    return [
        {
            "id": "neon-noir",
            "title": "Neon Noir",
            "description": "Rain-soaked streets lit by neon signs.",
            "prompt": "A {{subject}} in a rain-soaked alley, neon reflections, {{mood}} atmosphere",
            "variables": ["subject", "mood"],
            "image": "images/neon-noir.png",
            "tags": ["noir", "neon", "night"],
            "createdAt": "2026-01-02T10:00:00.000Z",
        },
        {
            "id": "watercolor-botanical",
            "title": "Watercolor Botanical",
            "description": "Soft botanical plates.",
            "prompt": "Botanical watercolor illustration of a {{plant}}",
            "variables": ["plant"],
            "image": "",
            "tags": ["watercolor", "nature"],
            "createdAt": "2026-01-03T10:00:00.000Z",
        },
        {
            "id": "pixel-arcade",
            "title": "Pixel Arcade",
            "description": "",
            "prompt": "16-bit pixel art arcade scene",
            "image": "https://cdn.example.com/pixel.png",
            "tags": ["pixel", "retro", "night"],
            "createdAt": "2026-01-04T10:00:00.000Z",
        },
    ]


@pytest.fixture
def app_paths(temp_dir: Path) -> dict[str, Path]:
    paths = {
        "repo": temp_dir,
        "styles_file": temp_dir / "data" / "styles.json",
        "api": temp_dir / "api",
        "images": temp_dir / "images",
    }
    paths["images"].mkdir(parents=True)
    return paths


@pytest.fixture
def test_client(monkeypatch, app_paths, replicate_client):
    """FastAPI TestClient with all paths redirected to a temporary directory."""
    from fastapi.testclient import TestClient

    from stylecat.api import main

    monkeypatch.setattr(main, "STYLES_FILE", app_paths["styles_file"])
    monkeypatch.setattr(main, "API_DIR", app_paths["api"])
    monkeypatch.setattr(main, "IMAGES_DIR", app_paths["images"])
    monkeypatch.setattr(main, "REPO_DIR", app_paths["repo"])
    monkeypatch.setattr(main.config, "analyze_model", ANALYZE_MODEL)
    monkeypatch.setattr(main.config, "preview_model", PREVIEW_MODEL)
    monkeypatch.setattr(main.config, "preview_batch_size", 2)

    with TestClient(main.app) as client:
        main.app.state.replicate = replicate_client
        yield client


@pytest.fixture
def seeded_catalog(app_paths, sample_styles, png_bytes) -> list[dict]:
    """Write the sample catalog and the neon-noir image into the app paths."""
    save_styles(app_paths["styles_file"], sample_styles)
    (app_paths["images"] / "neon-noir.png").write_bytes(png_bytes)
    return sample_styles


@pytest.fixture
def make_image():
    """Factory fixture: ``make_image("JPEG")`` returns encoded image bytes."""
    return make_image_bytes
