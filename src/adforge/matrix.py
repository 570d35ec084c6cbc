from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from . import platforms
from .models import BrandProfile, Campaign


class TargetKind(str, Enum):
    brand = "brand"
    product = "product"


@dataclass(frozen=True)
class Target:
    kind: TargetKind
    name: str
    product_index: Optional[int] = None
    product: dict = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class WorkItem:
    """One (target, platform) pair to be rendered into one Ad and one Export."""

    target: Target
    platform: str
    width: int
    height: int
    platform_name: str
    position: int = 0

    @property
    def label(self) -> str:
        return f"{self.target.name} / {self.platform}"


def expand_targets(campaign: Campaign, brand_profile: BrandProfile) -> List[Target]:
    targets = []
    if campaign.include_brand_ad:
        targets.append(Target(kind=TargetKind.brand, name=brand_profile.company_name))

    products = brand_profile.products or []
    for index in campaign.selected_products or []:
        # Stale selections after a profile edit are dropped, not rejected
        if not isinstance(index, int) or not 0 <= index < len(products):
            continue
        product = products[index]
        name = product.get("name") or f"Product {index + 1}"
        targets.append(Target(kind=TargetKind.product, name=name, product_index=index, product=product))
    return targets


def expand(campaign: Campaign, brand_profile: BrandProfile) -> List[WorkItem]:
    """Cross targets with platforms: for each target, for each platform."""
    valid_platforms = platforms.validate(campaign.target_platforms or [])
    items = []
    for target in expand_targets(campaign, brand_profile):
        for platform_id in valid_platforms:
            dims = platforms.dimensions_for(platform_id)
            items.append(
                WorkItem(
                    target=target,
                    platform=platform_id,
                    width=dims.width,
                    height=dims.height,
                    platform_name=dims.display_name,
                    position=len(items),
                )
            )
    return items
