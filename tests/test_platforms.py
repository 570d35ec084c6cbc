import pytest

from adforge import platforms
from adforge.errors import PlatformNotFoundError, ValidationError


def test_catalog_has_the_seven_supported_platforms():
    assert list(platforms.PLATFORM_DIMENSIONS) == [
        "instagram-feed",
        "instagram-story",
        "facebook-feed",
        "twitter",
        "linkedin",
        "pinterest",
        "tiktok",
    ]


@pytest.mark.parametrize(
    "platform_id, width, height, name",
    [
        ("instagram-story", 1080, 1920, "Instagram Story"),
        ("facebook-feed", 1200, 628, "Facebook Feed"),
        ("twitter", 1200, 675, "Twitter/X Post"),
        ("pinterest", 1000, 1500, "Pinterest Pin"),
    ],
)
def test_dimensions_for(platform_id, width, height, name):
    dims = platforms.dimensions_for(platform_id)
    assert (dims.width, dims.height, dims.display_name) == (width, height, name)


def test_unknown_platform_raises_validation_error():
    with pytest.raises(PlatformNotFoundError) as exc_info:
        platforms.dimensions_for("myspace")
    assert isinstance(exc_info.value, ValidationError)
    assert exc_info.value.platform_id == "myspace"


def test_validate_drops_unknown_ids_and_keeps_order():
    assert platforms.validate(["tiktok", "myspace", "instagram-feed"]) == ["tiktok", "instagram-feed"]
    assert platforms.validate([]) == []


def test_list_platforms():
    listed = platforms.list_platforms()
    assert len(listed) == 7
    assert listed[0] == {"id": "instagram-feed", "name": "Instagram Feed", "width": 1080, "height": 1080}
