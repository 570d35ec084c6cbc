"""remove.bg API client for background removal."""

import os

import requests
from dotenv import load_dotenv

from .config import Config
from .errors import ProviderError
from .logger import AdForgeLogger

load_dotenv()


class BackgroundRemover:
    """Client for removing backgrounds from images via the remove.bg API."""

    service = "remove-bg"

    def __init__(self, config: Config, logger: AdForgeLogger, session: requests.Session = None):
        self.config = config
        self.logger = logger
        self.session = session or requests.Session()
        self.api_key = os.getenv("REMOVE_BG_API_KEY", "")

    def remove_background(self, image_data: bytes) -> bytes:
        """
        Remove the background from an image.

        Args:
            image_data: Input image bytes

        Returns:
            PNG bytes with a transparent background
        """
        try:
            response = self.session.post(
                self.config.REMOVE_BG_API_URL,
                files={"image_file": ("image.png", image_data, "image/png")},
                data={"size": "auto", "format": "png"},
                headers={"X-Api-Key": self.api_key},
                timeout=self.config.HTTP_TIMEOUT,
            )
        except requests.RequestException as e:
            raise ProviderError(self.service, str(e)) from e

        if response.status_code == 200:
            self.logger.info("Background removed")
            return response.content

        error_msg = f"HTTP {response.status_code}"
        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        if "errors" in error_data:
            error_msg = f"{error_msg}: {error_data['errors']}"

        raise ProviderError(self.service, error_msg)
