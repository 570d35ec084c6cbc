import base64
import os
import time
from dataclasses import dataclass

import requests
from dotenv import load_dotenv

from .config import Config
from .errors import ImageErrorKind, ImageGenerationError
from .logger import AdForgeLogger

load_dotenv()

MODERATED_STATUSES = {"Content Moderated", "Request Moderated"}


@dataclass(frozen=True)
class PollPolicy:
    """Bound on waiting for an asynchronous render: max_attempts polls, interval seconds apart."""

    max_attempts: int = Config.POLL_MAX_ATTEMPTS
    interval: float = Config.POLL_INTERVAL

    @property
    def budget_seconds(self) -> float:
        return self.max_attempts * self.interval


@dataclass
class GeneratedImage:
    data: bytes
    width: int
    height: int


def normalize_dimension(value: int, config: Config = Config) -> int:
    """Clamp to the provider's range and round to its size step."""
    clamped = max(config.FLUX_MIN_DIMENSION, min(config.FLUX_MAX_DIMENSION, value))
    step = config.FLUX_DIMENSION_STEP
    rounded = int(round(clamped / step)) * step
    return max(config.FLUX_MIN_DIMENSION, min(config.FLUX_MAX_DIMENSION, rounded))


def classify_http_error(status_code: int, body: str = "") -> ImageErrorKind:
    lowered = (body or "").lower()
    if status_code == 429:
        return ImageErrorKind.rate_limited
    if status_code in (400, 422) and ("moderat" in lowered or "safety" in lowered or "policy" in lowered):
        return ImageErrorKind.policy_rejected
    if status_code in (408, 504):
        return ImageErrorKind.timeout
    if status_code >= 500:
        return ImageErrorKind.unavailable
    return ImageErrorKind.unknown


class ImageGenerator:
    """Handles all Flux API calls: submit, poll, download."""

    def __init__(self, config: Config, logger: AdForgeLogger, session: requests.Session = None, sleep=time.sleep):
        self.config = config
        self.logger = logger
        self.session = session or requests.Session()
        self.session.headers.update({"X-Key": os.getenv("BFL_API_KEY", ""), "Content-Type": "application/json"})
        self.sleep = sleep

    def generate_image(self, prompt: str, width: int, height: int, poll_policy: PollPolicy = None) -> GeneratedImage:
        """Render a prompt at the nearest provider-supported size to width x height."""
        norm_width = normalize_dimension(width, self.config)
        norm_height = normalize_dimension(height, self.config)
        self.logger.info(f"Flux: generating {norm_width}x{norm_height} (requested {width}x{height})")

        task_id = self._submit(
            self.config.FLUX_MODEL,
            {
                "prompt": prompt,
                "width": norm_width,
                "height": norm_height,
                "steps": self.config.FLUX_STEPS,
                "guidance": self.config.FLUX_GUIDANCE,
                "safety_tolerance": self.config.FLUX_SAFETY_TOLERANCE,
                "output_format": "png",
            },
        )
        sample_url = self._poll(task_id, poll_policy or PollPolicy())
        return GeneratedImage(self._download(sample_url), norm_width, norm_height)

    def fill_image(
        self, image: bytes, mask: bytes, prompt: str, width: int, height: int, poll_policy: PollPolicy = None
    ) -> GeneratedImage:
        """Inpaint the white areas of mask with content described by prompt."""
        norm_width = normalize_dimension(width, self.config)
        norm_height = normalize_dimension(height, self.config)
        self.logger.info(f"Flux fill: {norm_width}x{norm_height}")

        task_id = self._submit(
            self.config.FLUX_FILL_MODEL,
            {
                "image": base64.b64encode(image).decode("ascii"),
                "mask": base64.b64encode(mask).decode("ascii"),
                "prompt": prompt,
                "width": norm_width,
                "height": norm_height,
                "safety_tolerance": self.config.FLUX_SAFETY_TOLERANCE,
                "output_format": "png",
            },
        )
        sample_url = self._poll(task_id, poll_policy or PollPolicy())
        return GeneratedImage(self._download(sample_url), norm_width, norm_height)

    def _submit(self, model: str, payload: dict) -> str:
        response = self._request("post", f"{self.config.FLUX_API_URL}/{model}", json=payload)
        task_id = self._json(response).get("id")
        if not task_id:
            raise ImageGenerationError(self.config.FLUX_MODEL, "submission returned no task id")
        self.logger.debug(f"Flux task submitted: {task_id}")
        return task_id

    def _poll(self, task_id: str, policy: PollPolicy) -> str:
        for _ in range(policy.max_attempts):
            data = self._json(
                self._request("get", f"{self.config.FLUX_API_URL}/get_result", params={"id": task_id})
            )
            status = data.get("status")

            if status == "Ready":
                sample_url = (data.get("result") or {}).get("sample")
                if not sample_url:
                    raise ImageGenerationError(
                        self.config.FLUX_MODEL, f"task {task_id} is ready but has no sample", ImageErrorKind.unknown
                    )
                return sample_url
            if status in MODERATED_STATUSES:
                raise ImageGenerationError(self.config.FLUX_MODEL, status, ImageErrorKind.policy_rejected)
            if status in ("Error", "Failed"):
                raise ImageGenerationError(
                    self.config.FLUX_MODEL, f"generation failed: {data.get('error')}", ImageErrorKind.unknown
                )
            self.sleep(policy.interval)

        raise ImageGenerationError(
            self.config.FLUX_MODEL,
            f"task {task_id} not ready after {policy.max_attempts} polls ({policy.budget_seconds:g}s)",
            ImageErrorKind.timeout,
        )

    def _json(self, response: requests.Response) -> dict:
        try:
            data = response.json()
        except ValueError as e:
            raise ImageGenerationError(self.config.FLUX_MODEL, f"invalid JSON response: {e}", ImageErrorKind.unknown) from e
        if not isinstance(data, dict):
            raise ImageGenerationError(self.config.FLUX_MODEL, "unexpected response body", ImageErrorKind.unknown)
        return data

    def _download(self, url: str) -> bytes:
        return self._request("get", url).content

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            response = self.session.request(method, url, timeout=self.config.HTTP_TIMEOUT, **kwargs)
        except requests.Timeout as e:
            raise ImageGenerationError(self.config.FLUX_MODEL, str(e), ImageErrorKind.timeout) from e
        except requests.ConnectionError as e:
            raise ImageGenerationError(self.config.FLUX_MODEL, str(e), ImageErrorKind.unavailable) from e

        if response.status_code >= 400:
            kind = classify_http_error(response.status_code, response.text)
            self.logger.error(f"Flux API error {response.status_code} ({kind.value})")
            raise ImageGenerationError(self.config.FLUX_MODEL, f"HTTP {response.status_code}: {response.text[:200]}", kind)
        return response
