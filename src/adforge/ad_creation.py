"""
Standalone ad creation outside of campaigns.

With a product photo the background is removed, the cut-out is centred on a
transparent canvas and Flux Fill paints the scene around it. Without one, the
whole visual is generated from the prompt.
"""

from typing import List
from uuid import uuid4

from . import platforms
from .background_removal import BackgroundRemover
from .config import Config
from .costs import AdCostBreakdown
from .db import session_scope
from .errors import NotFoundError, ProviderError, ValidationError
from .logger import AdForgeLogger
from .matrix import Target, TargetKind
from .models import Ad, AdExport
from .pipeline import GenerationPipeline, build_context, parse_copy
from .prompt_generation import STYLE_TEMPLATES
from .repositories import AdsRepository, BrandProfilesRepository


class AdCreator:
    """Creates, re-copies, exports and deletes single ads."""

    def __init__(
        self,
        session_factory,
        pipeline: GenerationPipeline,
        background_remover: BackgroundRemover,
        config: Config = None,
        logger: AdForgeLogger = None,
    ):
        self.session_factory = session_factory
        self.pipeline = pipeline
        self.background_remover = background_remover
        self.config = config or Config()
        self.logger = logger or AdForgeLogger()

    def create_ad(
        self,
        brand_profile_id: str,
        style: str,
        custom_instructions: str = None,
        product_image: bytes = None,
        product_index: int = None,
    ) -> Ad:
        if style not in STYLE_TEMPLATES:
            raise ValidationError(f"Invalid style. Must be one of: {', '.join(STYLE_TEMPLATES)}")

        with session_scope(self.session_factory) as session:
            brand = BrandProfilesRepository(session).get(brand_profile_id)
            if not brand:
                raise NotFoundError(f"Brand profile not found: {brand_profile_id}")

        target = self._target(brand, product_index)
        context = build_context(brand, target)
        has_product_image = product_image is not None
        ad_id = str(uuid4())
        breakdown = AdCostBreakdown()
        size = self.config.AD_CANVAS_SIZE

        self.logger.info(f"Generating {style} ad for {target.name}{' with product photo' if has_product_image else ''}")

        prompt = self.pipeline.prompt_generator.create_image_prompt(context, style, has_product_image, custom_instructions)
        self.pipeline.track_tokens(breakdown, self.config.LLM_SERVICE, "image-prompt", prompt, ad_id)

        if has_product_image:
            image_data = self._fill_around_product(product_image, prompt.text, size, breakdown, ad_id)
        else:
            generated = self.pipeline.image_generator.generate_image(
                prompt.text, size, size, poll_policy=self.pipeline.poll_policy
            )
            self.pipeline.track_images(breakdown, self.config.FLUX_MODEL, "image-generation", ad_id)
            image_data = generated.data

        name = f"adforge-{target.name}-{style}"
        hosted = self.pipeline.host.upload(image_data, name)
        self.pipeline.track_images(breakdown, "cloudinary", "image-upload", ad_id)

        copy = self.pipeline.write_copy(context, style, custom_instructions, breakdown, ad_id)

        ad = Ad(
            id=ad_id,
            campaign_id=None,
            brand_profile_id=brand.id,
            style=style,
            headline=copy.headline,
            body=copy.body,
            cta=copy.cta,
            hashtags=copy.hashtags,
            image_url=hosted.url,
            image_public_id=hosted.public_id,
            image_prompt=prompt.text,
            product_name=target.name if target.kind == TargetKind.product else None,
            product_index=target.product_index,
            has_product_image=has_product_image,
            product_image_url=hosted.url if has_product_image else None,
            generation_cost=breakdown.total,
            cost_breakdown=breakdown.to_dict(),
        )
        with session_scope(self.session_factory) as session:
            ad = AdsRepository(session).create_with_exports(ad, [])

        self.logger.info(f"Ad generated successfully: {ad_id} (${breakdown.total:.4f})")
        return ad

    def regenerate_copy(self, ad_id: str) -> Ad:
        """Replace an ad's copy. Unlike generation, an unusable answer is an error here."""
        with session_scope(self.session_factory) as session:
            ad = self._get_ad(session, ad_id)
            brand = BrandProfilesRepository(session).get(ad.brand_profile_id)

        target = self._target(brand, ad.product_index)
        context = build_context(brand, target)
        result = self.pipeline.prompt_generator.create_ad_copy(context, ad.style)
        self.pipeline.ledger.track_token_usage(
            self.config.LLM_SERVICE, "ad-copy-regeneration", result.input_tokens, result.output_tokens, ad_id
        )

        try:
            copy = parse_copy(result.text)
        except ValueError as e:
            raise ProviderError(self.config.LLM_SERVICE, f"failed to parse generated copy: {e}") from e

        with session_scope(self.session_factory) as session:
            AdsRepository(session).update(
                ad_id, headline=copy.headline, body=copy.body, cta=copy.cta, hashtags=copy.hashtags
            )
        self.pipeline.ledger.recalculate_ad_costs(ad_id)

        with session_scope(self.session_factory) as session:
            return self._get_ad(session, ad_id)

    def export(self, ad_id: str, platform_ids: List[str]) -> List[AdExport]:
        """Resize an ad's image for each platform and host the results.

        Platforms the ad already has an export for are returned as they are.
        """
        valid = platforms.validate(platform_ids)
        if not valid:
            raise ValidationError(f"Invalid platforms. Valid options: {', '.join(platforms.PLATFORM_DIMENSIONS)}")

        with session_scope(self.session_factory) as session:
            repo = AdsRepository(session)
            ad = self._get_ad(session, ad_id)
            existing = {export.platform: export for export in repo.list_exports(ad_id)}

            source = None
            exports = []
            for platform_id in valid:
                if platform_id in existing:
                    exports.append(existing[platform_id])
                    continue
                if source is None:
                    source = self.pipeline.host.download(ad.image_url)

                dims = platforms.dimensions_for(platform_id)
                resized = self.pipeline.image_processor.fit_to_size(source, dims.width, dims.height)
                hosted = self.pipeline.host.upload(resized, f"{ad_id}-{platform_id}")
                self.pipeline.ledger.track_image_generation("cloudinary", "export-upload", 1, ad_id, {"platform": platform_id})

                export = repo.add_export(
                    AdExport(
                        ad_id=ad_id,
                        platform=platform_id,
                        width=dims.width,
                        height=dims.height,
                        format=self.config.EXPORT_FORMAT,
                        url=hosted.url,
                        public_id=hosted.public_id,
                    )
                )
                self.logger.info(f"Exported ad {ad_id} for {dims.display_name} ({dims.width}x{dims.height})")
                exports.append(export)
        return exports

    def delete_ad(self, ad_id: str) -> None:
        with session_scope(self.session_factory) as session:
            repo = AdsRepository(session)
            ad = self._get_ad(session, ad_id)
            public_ids = [ad.image_public_id] + [export.public_id for export in repo.list_exports(ad_id)]

            for public_id in dict.fromkeys(pid for pid in public_ids if pid):
                try:
                    self.pipeline.host.delete(public_id)
                except ProviderError as e:
                    # The record is removed even if the hosted copy lingers
                    self.logger.warning(f"Failed to delete hosted asset {public_id}: {e}")

            repo.delete(ad_id)
        self.logger.info(f"Deleted ad {ad_id}")

    def _fill_around_product(self, product_image: bytes, prompt: str, size: int, breakdown, ad_id: str) -> bytes:
        cutout = self.background_remover.remove_background(product_image)
        self.pipeline.track_images(breakdown, self.background_remover.service, "background-removal", ad_id)

        processor = self.pipeline.image_processor
        canvas = processor.center_on_canvas(cutout, size, size)
        mask = processor.mask_from_transparent(canvas)

        filled = self.pipeline.image_generator.fill_image(
            canvas, mask, prompt, size, size, poll_policy=self.pipeline.poll_policy
        )
        self.pipeline.track_images(breakdown, "flux-pro-fill", "image-fill", ad_id)
        return filled.data

    @staticmethod
    def _target(brand, product_index) -> Target:
        products = brand.products or []
        if isinstance(product_index, int) and 0 <= product_index < len(products):
            product = products[product_index]
            name = product.get("name") or f"Product {product_index + 1}"
            return Target(kind=TargetKind.product, name=name, product_index=product_index, product=product)
        return Target(kind=TargetKind.brand, name=brand.company_name)

    @staticmethod
    def _get_ad(session, ad_id: str) -> Ad:
        ad = AdsRepository(session).get(ad_id)
        if not ad:
            raise NotFoundError(f"Ad not found: {ad_id}")
        return ad
