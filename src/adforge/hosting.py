import io
import os
import re
import time
from dataclasses import dataclass

import cloudinary
import cloudinary.uploader
import requests
from cloudinary.exceptions import Error as CloudinaryError
from dotenv import load_dotenv

from .config import Config
from .errors import ProviderError
from .logger import AdForgeLogger

load_dotenv()


@dataclass(frozen=True)
class HostedAsset:
    url: str
    public_id: str


class CloudinaryHost:
    """Uploads and deletes images through the Cloudinary SDK."""

    service = "cloudinary"

    def __init__(self, config: Config, logger: AdForgeLogger, session: requests.Session = None):
        self.config = config
        self.logger = logger
        self.session = session or requests.Session()
        cloudinary.config(
            cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME"),
            api_key=os.getenv("CLOUDINARY_API_KEY"),
            api_secret=os.getenv("CLOUDINARY_API_SECRET"),
            secure=True,
        )

    def upload(self, image: bytes, name: str) -> HostedAsset:
        stem = re.sub(r"\.[^/.]+$", "", name)
        try:
            result = cloudinary.uploader.upload(
                io.BytesIO(image),
                folder=self.config.CLOUDINARY_FOLDER,
                public_id=f"{int(time.time() * 1000)}-{stem}",
                resource_type="image",
            )
        except CloudinaryError as e:
            raise ProviderError(self.service, f"upload of {name} failed: {e}") from e

        self.logger.info(f"Uploaded {name} -> {result['secure_url']}")
        return HostedAsset(url=result["secure_url"], public_id=result["public_id"])

    def download(self, url: str) -> bytes:
        try:
            response = self.session.get(url, timeout=self.config.HTTP_TIMEOUT)
        except requests.RequestException as e:
            raise ProviderError(self.service, str(e)) from e
        if response.status_code >= 400:
            raise ProviderError(self.service, f"HTTP {response.status_code} fetching {url}")
        return response.content

    def delete(self, public_id: str) -> None:
        try:
            result = cloudinary.uploader.destroy(public_id)
        except CloudinaryError as e:
            raise ProviderError(self.service, f"delete of {public_id} failed: {e}") from e
        self.logger.info(f"Deleted hosted asset {public_id} ({result.get('result')})")
