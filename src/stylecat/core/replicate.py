"""Minimal async client for the Replicate prediction API.

Only the small surface Stylecat needs is implemented: create a prediction for
an official model, wait for it to finish, and download generated assets.

Prediction lifecycle::

    POST /v1/models/{owner}/{name}/predictions   (Prefer: wait)
        -> status: starting | processing | succeeded | failed | canceled
    GET  urls.get                                  (until terminal status)

``Prefer: wait`` lets Replicate hold the request open for fast models, so
polling is only needed for slow ones.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time

import httpx

logger = logging.getLogger(__name__)

_PENDING_STATUSES = {"starting", "processing"}


class ReplicateError(RuntimeError):
    """Raised when a prediction cannot be created or does not succeed."""


class ReplicateNotConfigured(ReplicateError):
    """Raised when no API token is configured."""


class ReplicateClient:
    """Async Replicate client built on :class:`httpx.AsyncClient`.

    Args:
        api_token: Replicate API token.  ``None`` leaves the client usable for
            construction, but every call raises :class:`ReplicateNotConfigured`.
        base_url: API root, normally ``https://api.replicate.com/v1``.
        poll_interval: Seconds between status polls.
        timeout: Maximum seconds to wait for one prediction.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        api_token: str | None,
        base_url: str = "https://api.replicate.com/v1",
        *,
        poll_interval: float = 1.0,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_token = api_token
        self._base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self._api_token)

    def _get_client(self) -> httpx.AsyncClient:
        if not self._api_token:
            raise ReplicateNotConfigured("Replicate API token is not configured")
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={
                    "Authorization": f"Bearer {self._api_token}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _error_from_response(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return f"HTTP {response.status_code}: {response.text[:240]}"
        if isinstance(data, dict):
            return str(data.get("detail") or data.get("error") or f"HTTP {response.status_code}")
        return f"HTTP {response.status_code}"

    async def _request(self, method: str, url: str, **kwargs) -> dict:
        client = self._get_client()
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise ReplicateError(f"Replicate request failed: {exc}") from exc

        if response.is_error:
            raise ReplicateError(f"Replicate error: {self._error_from_response(response)}")

        try:
            data = response.json()
        except ValueError as exc:
            raise ReplicateError("Replicate returned a non-JSON payload") from exc
        if not isinstance(data, dict):
            raise ReplicateError("Replicate returned an unexpected response shape")
        return data

    async def create_prediction(self, model: str, model_input: dict) -> dict:
        """Start a prediction for an official model (``owner/name``)."""
        if model.count("/") != 1:
            raise ReplicateError(f"Model must be 'owner/name', got {model!r}")
        return await self._request(
            "POST",
            f"/models/{model}/predictions",
            json={"input": model_input},
            headers={"Prefer": "wait"},
        )

    async def wait(self, prediction: dict) -> dict:
        """Poll *prediction* until it reaches a terminal status.

        Raises:
            ReplicateError: If the prediction fails, is canceled, or does not
                finish within :attr:`timeout` seconds.
        """
        deadline = time.monotonic() + self.timeout
        while prediction.get("status") in _PENDING_STATUSES:
            if time.monotonic() >= deadline:
                raise ReplicateError(
                    f"Prediction {prediction.get('id')} timed out after {self.timeout:.0f}s"
                )
            get_url = (prediction.get("urls") or {}).get("get")
            if not get_url:
                raise ReplicateError("Prediction has no polling URL")
            await asyncio.sleep(self.poll_interval)
            prediction = await self._request("GET", get_url)

        status = prediction.get("status")
        if status != "succeeded":
            error = prediction.get("error") or "no error message"
            raise ReplicateError(f"Prediction {status or 'unknown'}: {error}")
        return prediction

    async def run(self, model: str, model_input: dict):
        """Run *model* to completion and return its ``output``."""
        started = time.monotonic()
        prediction = await self.create_prediction(model, model_input)
        prediction = await self.wait(prediction)
        logger.info(
            "Replicate %s finished in %.1fs (prediction %s)",
            model,
            time.monotonic() - started,
            prediction.get("id"),
        )
        return prediction.get("output")

    async def download(self, url: str) -> bytes:
        """Fetch a generated asset.  ``data:`` URLs are decoded in place."""
        if url.startswith("data:"):
            try:
                _, payload = url.split(",", 1)
                return base64.b64decode(payload)
            except ValueError as exc:
                raise ReplicateError(f"Invalid data URL: {exc}") from exc

        # Assets are served from a CDN; do not forward the API token.
        async with httpx.AsyncClient(
            timeout=60.0, follow_redirects=True, transport=self._transport
        ) as client:
            try:
                response = await client.get(url)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise ReplicateError(f"Download failed for {url}: {exc}") from exc
            return response.content
