"""Tests for stylecat.core.previews and stylecat.core.analyzer."""

from __future__ import annotations

import asyncio
import base64

import httpx
import pytest

from stylecat.core.analyzer import ANALYZE_PROMPT, analyze_image, to_data_uri
from stylecat.core.model_output import ModelOutputError
from stylecat.core.previews import generate_preview, generate_previews
from stylecat.core.replicate import ReplicateClient

MODEL = "black-forest-labs/flux-schnell"


def _run(coro):
    return asyncio.run(coro)


class TestGeneratePreview:
    def test_saves_image_and_returns_relative_path(self, replicate_client, fake_replicate, temp_dir, png_bytes):
        style = {"id": "neon-noir", "prompt": "A {{subject}} under {{light}}"}

        image = _run(
            generate_preview(replicate_client, style, temp_dir, model=MODEL, values={"light": "neon"})
        )

        assert image == "images/neon-noir-preview.webp"
        assert (temp_dir / "neon-noir-preview.webp").read_bytes() == png_bytes
        body = fake_replicate.created(MODEL)[0]
        assert body["input"]["prompt"] == "A subject under neon"
        assert body["input"]["aspect_ratio"] == "1:1"
        assert body["input"]["output_format"] == "webp"

    def test_empty_prompt_is_rejected_without_calling_api(self, replicate_client, fake_replicate, temp_dir):
        with pytest.raises(ValueError, match="no prompt"):
            _run(generate_preview(replicate_client, {"id": "x", "prompt": "  "}, temp_dir, model=MODEL))
        assert fake_replicate.requests == []

    def test_string_output(self, replicate_client, fake_replicate, temp_dir):
        fake_replicate.outputs[MODEL] = "https://replicate.delivery/single.webp"
        image = _run(generate_preview(replicate_client, {"id": "s", "prompt": "p"}, temp_dir, model=MODEL))
        assert image == "images/s-preview.webp"

    def test_empty_output_raises(self, replicate_client, fake_replicate, temp_dir):
        from stylecat.core.replicate import ReplicateError

        fake_replicate.outputs[MODEL] = []
        with pytest.raises(ReplicateError, match="returned no image"):
            _run(generate_preview(replicate_client, {"id": "s", "prompt": "p"}, temp_dir, model=MODEL))


class TestGeneratePreviews:
    def _styles(self, n):
        return [{"id": f"style-{i}", "prompt": f"prompt number {i}"} for i in range(n)]

    def test_results_in_input_order(self, replicate_client, temp_dir):
        styles = self._styles(5)
        results = _run(generate_previews(replicate_client, styles, temp_dir, model=MODEL, batch_size=2))

        assert [r.id for r in results] == [s["id"] for s in styles]
        assert all(r.ok for r in results)
        assert [r.image for r in results] == [f"images/style-{i}-preview.webp" for i in range(5)]

    def test_failures_do_not_abort_batch(self, replicate_client, fake_replicate, temp_dir):
        fake_replicate.fail_prompts.add("number 1")
        styles = self._styles(3) + [{"id": "empty", "prompt": ""}]

        results = _run(generate_previews(replicate_client, styles, temp_dir, model=MODEL, batch_size=4))

        assert [r.ok for r in results] == [True, False, True, False]
        assert "content flagged" in results[1].error
        assert "no prompt" in results[3].error
        assert not (temp_dir / "style-1-preview.webp").exists()

    def test_batches_bound_concurrency(self, temp_dir, png_bytes):
        """No more than ``batch_size`` predictions are in flight at once."""
        in_flight = 0
        peak = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal in_flight, peak
            if request.url.host == "replicate.delivery":
                return httpx.Response(200, content=png_bytes)
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return httpx.Response(
                201,
                json={"id": "p", "status": "succeeded", "output": ["https://replicate.delivery/x.webp"]},
            )

        client = ReplicateClient("t", transport=httpx.MockTransport(handler))
        results = _run(generate_previews(client, self._styles(7), temp_dir, model=MODEL, batch_size=3))

        assert len(results) == 7
        assert peak == 3

    def test_invalid_batch_size(self, replicate_client, temp_dir):
        with pytest.raises(ValueError, match="batch_size"):
            _run(generate_previews(replicate_client, [], temp_dir, model=MODEL, batch_size=0))

    def test_no_styles(self, replicate_client, temp_dir):
        assert _run(generate_previews(replicate_client, [], temp_dir, model=MODEL)) == []


class TestAnalyzer:
    def test_prompt_is_localised_and_keeps_placeholders(self):
        text = ANALYZE_PROMPT.format(language="French")
        assert "(in French)" in text
        assert "{{subject}}" in text

    def test_data_uri(self):
        uri = to_data_uri(b"abc", "image/png")
        assert uri == "data:image/png;base64," + base64.b64encode(b"abc").decode()

    def test_analyze_image(self, replicate_client, fake_replicate, png_bytes):
        fake_replicate.outputs["google/gemini-3-pro"] = [
            "Here you go:\n```json\n",
            '{"title": "Néon", "description": "Nuit.", "prompt": "A {{subject}}", "tags": ["Noir"]}',
            "\n```",
        ]

        result = _run(
            analyze_image(
                replicate_client, png_bytes, "image/png", model="google/gemini-3-pro", language="English"
            )
        )

        assert result["title"] == "Néon"
        assert result["tags"] == ["noir"]
        sent = fake_replicate.created("google/gemini-3-pro")[0]["input"]
        assert sent["image"].startswith("data:image/png;base64,")
        assert "(in English)" in sent["prompt"]

    def test_analyze_image_unparseable(self, replicate_client, fake_replicate, png_bytes):
        fake_replicate.outputs["google/gemini-3-pro"] = "Sorry, I can't help with that."
        with pytest.raises(ModelOutputError):
            _run(analyze_image(replicate_client, png_bytes, "image/png", model="google/gemini-3-pro"))
