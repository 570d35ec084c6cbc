from dataclasses import dataclass
from typing import Iterable, List

from .errors import PlatformNotFoundError


@dataclass(frozen=True)
class PlatformDimensions:
    width: int
    height: int
    display_name: str


PLATFORM_DIMENSIONS = {
    "instagram-feed": PlatformDimensions(1080, 1080, "Instagram Feed"),
    "instagram-story": PlatformDimensions(1080, 1920, "Instagram Story"),
    "facebook-feed": PlatformDimensions(1200, 628, "Facebook Feed"),
    "twitter": PlatformDimensions(1200, 675, "Twitter/X Post"),
    "linkedin": PlatformDimensions(1200, 627, "LinkedIn Post"),
    "pinterest": PlatformDimensions(1000, 1500, "Pinterest Pin"),
    "tiktok": PlatformDimensions(1080, 1920, "TikTok"),
}


def dimensions_for(platform_id: str) -> PlatformDimensions:
    try:
        return PLATFORM_DIMENSIONS[platform_id]
    except KeyError:
        raise PlatformNotFoundError(platform_id) from None


def validate(candidate_ids: Iterable[str]) -> List[str]:
    """Return the known platform ids from candidate_ids, keeping their order."""
    return [platform_id for platform_id in candidate_ids if platform_id in PLATFORM_DIMENSIONS]


def list_platforms() -> List[dict]:
    return [
        {"id": platform_id, "name": dims.display_name, "width": dims.width, "height": dims.height}
        for platform_id, dims in PLATFORM_DIMENSIONS.items()
    ]
