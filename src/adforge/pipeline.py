"""
Per work item generation pipeline.

Stages run in order: prompt synthesis, image synthesis, hosting, copy synthesis.
The first three are fatal to the item when they fail; copy synthesis degrades to
a deterministic template. Costs of completed stages are recorded as they happen
and stay in the ledger whether or not the item finishes.
"""

import json
import re
from dataclasses import dataclass, field
from typing import List, Optional, Union

from .config import Config
from .costs import AdCostBreakdown, CostLedger, image_cost, token_cost
from .errors import ImageErrorKind, ImageGenerationError, PipelineStage, ProviderError
from .hosting import HostedAsset
from .image_generation import PollPolicy
from .logger import AdForgeLogger
from .matrix import Target, TargetKind, WorkItem
from .models import BrandProfile
from .prompt_generation import AdContext

FALLBACK_BODY = "Experience the difference."


@dataclass
class AdCopy:
    headline: str
    body: str
    cta: str
    hashtags: List[str] = field(default_factory=list)
    fallback: bool = False


@dataclass
class PipelineResult:
    prompt: str
    image: HostedAsset
    copy: AdCopy
    cost_breakdown: AdCostBreakdown

    @property
    def image_url(self) -> str:
        return self.image.url


@dataclass
class PipelineFailure:
    stage: PipelineStage
    cause: Exception

    @property
    def error_kind(self) -> Optional[ImageErrorKind]:
        return getattr(self.cause, "kind", None)

    def __str__(self) -> str:
        kind = f" [{self.error_kind.value}]" if self.error_kind else ""
        return f"{self.stage.value}{kind}: {self.cause}"


PipelineOutcome = Union[PipelineResult, PipelineFailure]


def build_context(brand: BrandProfile, target: Target) -> AdContext:
    """Brand fields, with audience, benefits and promotion angle taken from the product when it has them."""
    context = AdContext(
        company_name=brand.company_name,
        industry=brand.industry or "",
        target_audience=brand.target_audience or "",
        voice_tone=brand.voice_tone or "",
        visual_style=brand.visual_style or "",
        personality=list(brand.personality or []),
        colors=brand.colors,
        selling_points=list(brand.unique_selling_points or []),
    )
    if target.kind == TargetKind.product:
        product = target.product
        context.product_name = target.name
        context.product_description = product.get("description") or ""
        context.promotion_angle = product.get("promotion_angle") or None
        context.features = list(product.get("features") or [])
        context.target_audience = product.get("target_audience") or context.target_audience
        context.selling_points = list(product.get("key_benefits") or context.selling_points)
    return context


def parse_copy(text: str) -> AdCopy:
    """Parse the copy model's JSON answer; raises ValueError when it is not usable."""
    cleaned = re.sub(r"```(?:json)?", "", text or "").strip()
    match = re.search(r"\{[\s\S]*\}", cleaned)
    if not match:
        raise ValueError("no JSON object in copy response")

    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("copy response is not an object")

    fields = {}
    for key in ("headline", "body", "cta"):
        value = data.get(key)
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"copy response missing {key}")
        fields[key] = value.strip()

    hashtags = data.get("hashtags") or []
    if not isinstance(hashtags, list):
        raise ValueError("hashtags is not a list")
    return AdCopy(hashtags=[str(tag) for tag in hashtags], **fields)


def fallback_copy(context: AdContext) -> AdCopy:
    """Deterministic copy used when the copy model fails or returns garbage."""
    body = context.promotion_angle or (context.selling_points[0] if context.selling_points else FALLBACK_BODY)
    hashtags = ["#" + re.sub(r"\s+", "", context.company_name)]
    if context.industry:
        hashtags.append("#" + re.sub(r"\s+", "", context.industry))
    return AdCopy(
        headline=f"Discover {context.target_name}",
        body=body,
        cta="Learn More",
        hashtags=hashtags,
        fallback=True,
    )


def asset_name(item: WorkItem) -> str:
    slug = re.sub(r"[^a-zA-Z0-9\s-]", "", item.target.name)
    slug = re.sub(r"\s+", "_", slug.strip()).lower() or "ad"
    return f"{slug}-{item.platform}"


class GenerationPipeline:
    """Runs one work item through the four provider stages."""

    def __init__(
        self,
        prompt_generator,
        image_generator,
        image_processor,
        host,
        ledger: CostLedger,
        config: Config = None,
        logger: AdForgeLogger = None,
        poll_policy: PollPolicy = None,
    ):
        self.prompt_generator = prompt_generator
        self.image_generator = image_generator
        self.image_processor = image_processor
        self.host = host
        self.ledger = ledger
        self.config = config or Config()
        self.logger = logger or AdForgeLogger()
        self.poll_policy = poll_policy or PollPolicy()

    def run(
        self,
        item: WorkItem,
        brand: BrandProfile,
        style: str,
        custom_instructions: str = None,
        ad_id: str = None,
    ) -> PipelineOutcome:
        context = build_context(brand, item.target)
        breakdown = AdCostBreakdown()
        llm_service = self.config.LLM_SERVICE
        image_service = self.config.FLUX_MODEL

        # 1. Prompt synthesis
        try:
            prompt_result = self.prompt_generator.create_image_prompt(context, style, False, custom_instructions)
        except Exception as e:
            return self._fail(item, PipelineStage.prompt, e)
        self.track_tokens(breakdown, llm_service, "image-prompt", prompt_result, ad_id)

        # 2. Image synthesis, sized for the platform
        try:
            generated = self.image_generator.generate_image(
                prompt_result.text, item.width, item.height, poll_policy=self.poll_policy
            )
        except Exception as e:
            return self._fail(item, PipelineStage.image, e)
        self.track_images(breakdown, image_service, "image-generation", ad_id, {"prompt": prompt_result.text[:100]})

        try:
            image_data = self.image_processor.fit_to_size(generated.data, item.width, item.height)
        except Exception as e:
            return self._fail(item, PipelineStage.image, ImageGenerationError(image_service, f"unreadable image: {e}"))

        # 3. Hosting
        try:
            hosted = self.host.upload(image_data, asset_name(item))
        except Exception as e:
            return self._fail(item, PipelineStage.hosting, e)
        self.track_images(breakdown, "cloudinary", "image-upload", ad_id)

        # 4. Copy synthesis (best effort)
        copy = self.write_copy(context, style, custom_instructions, breakdown, ad_id)

        return PipelineResult(prompt=prompt_result.text, image=hosted, copy=copy, cost_breakdown=breakdown)

    def write_copy(self, context: AdContext, style: str, custom_instructions: str, breakdown, ad_id) -> AdCopy:
        try:
            copy_result = self.prompt_generator.create_ad_copy(context, style, custom_instructions)
        except ProviderError as e:
            self.logger.warning(f"Copy generation failed for {context.target_name}, using template copy: {e}")
            return fallback_copy(context)
        self.track_tokens(breakdown, self.config.LLM_SERVICE, "ad-copy", copy_result, ad_id)

        try:
            return parse_copy(copy_result.text)
        except ValueError as e:
            self.logger.warning(f"Unparseable copy for {context.target_name}, using template copy: {e}")
            return fallback_copy(context)

    def _fail(self, item: WorkItem, stage: PipelineStage, cause: Exception) -> PipelineFailure:
        failure = PipelineFailure(stage=stage, cause=cause)
        self.logger.error(f"Work item {item.label} failed at {failure}")
        return failure

    def track_tokens(self, breakdown: AdCostBreakdown, service: str, operation: str, result, ad_id) -> None:
        try:
            entry = self.ledger.track_token_usage(service, operation, result.input_tokens, result.output_tokens, ad_id)
            amount = entry.cost
        except Exception as e:
            amount = token_cost(service, result.input_tokens, result.output_tokens)
            self._warn_unrecorded(service, operation, amount, e)
        breakdown.add(service, amount)

    def track_images(self, breakdown: AdCostBreakdown, service: str, operation: str, ad_id, metadata=None) -> None:
        try:
            entry = self.ledger.track_image_generation(service, operation, 1, ad_id, metadata)
            amount = entry.cost
        except Exception as e:
            amount = image_cost(service, 1)
            self._warn_unrecorded(service, operation, amount, e)
        breakdown.add(service, amount)

    def _warn_unrecorded(self, service: str, operation: str, amount: float, error: Exception) -> None:
        # The ad will carry this amount but the ledger will not
        self.logger.warning(f"[Cost] Failed to record {service} {operation} (${amount:.6f}): {error}")
