"""
Background-removal collaborators.

Each remover takes a source image URL and returns an iterator over the bytes
of the processed PNG. Every failure, including timeouts, is raised as
``ProcessingError``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Iterator, Optional, Protocol

import requests

from wardrobe.errors import ProcessingError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
POLL_INTERVAL_SECONDS = 1.0
TERMINAL_STATUSES = {"succeeded", "failed", "canceled"}


class BackgroundRemover(Protocol):
    def remove(self, image_url: str) -> Iterator[bytes]:
        ...


def _stream_url(
    session: requests.Session, url: str, timeout: float
) -> Iterator[bytes]:
    try:
        with session.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if chunk:
                    yield chunk
    except requests.RequestException as exc:
        raise ProcessingError(f"Failed to download {url}: {exc}") from exc


@dataclass
class StaticBackgroundRemover:
    """Returns fixed bytes for every request (tests and offline development)."""

    payload: bytes = b""

    def remove(self, image_url: str) -> Iterator[bytes]:
        return iter([self.payload])


@dataclass
class PassthroughBackgroundRemover:
    """
    Downloads the source image unchanged.

    Used when no Replicate token is configured so uploads still work locally.
    """

    timeout_seconds: float = 30.0

    def __post_init__(self):
        self._session = requests.Session()

    def remove(self, image_url: str) -> Iterator[bytes]:
        return _stream_url(self._session, image_url, self.timeout_seconds)


@dataclass
class ReplicateBackgroundRemover:
    """Runs the rembg model on Replicate and streams the resulting image."""

    api_token: str
    model_version: str
    api_url: str = "https://api.replicate.com/v1"
    timeout_seconds: float = 120.0

    def __post_init__(self):
        # Output files are fetched without the API credentials.
        self._downloads = requests.Session()
        self._session = requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {self.api_token}",
                "Content-Type": "application/json",
            }
        )

    def _version_id(self) -> str:
        # "owner/model:version" -> "version"
        return self.model_version.rsplit(":", 1)[-1]

    def _create_prediction(self, image_url: str, deadline: float) -> dict:
        response = self._session.post(
            f"{self.api_url}/predictions",
            json={"version": self._version_id(), "input": {"image": image_url}},
            headers={"Prefer": f"wait={int(min(60, max(1, deadline - time.monotonic())))}"},
            timeout=max(1.0, deadline - time.monotonic()),
        )
        response.raise_for_status()
        return response.json()

    def _wait_for_prediction(self, prediction: dict, deadline: float) -> dict:
        while prediction.get("status") not in TERMINAL_STATUSES:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ProcessingError(
                    f"Background removal timed out after {self.timeout_seconds:.0f}s"
                )
            time.sleep(min(POLL_INTERVAL_SECONDS, remaining))
            poll_url = (prediction.get("urls") or {}).get("get")
            if not poll_url:
                raise ProcessingError("Prediction response is missing a poll URL")
            response = self._session.get(poll_url, timeout=max(1.0, remaining))
            response.raise_for_status()
            prediction = response.json()
        return prediction

    @staticmethod
    def _output_url(prediction: dict) -> Optional[str]:
        output = prediction.get("output")
        if isinstance(output, list):
            output = output[0] if output else None
        return output if isinstance(output, str) else None

    def remove(self, image_url: str) -> Iterator[bytes]:
        deadline = time.monotonic() + self.timeout_seconds
        try:
            prediction = self._create_prediction(image_url, deadline)
            prediction = self._wait_for_prediction(prediction, deadline)
        except requests.RequestException as exc:
            raise ProcessingError(f"Background removal request failed: {exc}") from exc

        if prediction.get("status") != "succeeded":
            raise ProcessingError(
                f"Background removal {prediction.get('status')}: {prediction.get('error')}"
            )
        output_url = self._output_url(prediction)
        if not output_url:
            raise ProcessingError("Background removal returned no output")
        logger.info("Background removed for %s", image_url)
        return _stream_url(
            self._downloads, output_url, max(1.0, deadline - time.monotonic())
        )
