import os
import re
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv
from openai import OpenAI

from .config import Config
from .errors import ProviderError
from .logger import AdForgeLogger

load_dotenv()


@dataclass
class AdContext:
    """Brand fields with product overrides applied, as fed to the text models."""

    company_name: str
    industry: str
    target_audience: str
    voice_tone: str
    visual_style: str
    personality: List[str]
    colors: dict
    selling_points: List[str]
    product_name: Optional[str] = None
    product_description: Optional[str] = None
    promotion_angle: Optional[str] = None
    features: List[str] = field(default_factory=list)

    @property
    def is_product_ad(self) -> bool:
        return bool(self.product_name and self.product_description)

    @property
    def target_name(self) -> str:
        return self.product_name or self.company_name


@dataclass
class TextResult:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0


STYLE_GUIDELINES = {
    "minimal": "Clean and sparse. Short punchy copy with a premium feel.",
    "gradient": "Modern and tech-forward. Confident, forward-looking language.",
    "abstract": "Creative and conceptual. Copy may lean poetic.",
    "lifestyle": "Relatable and aspirational. Lead with benefits and emotion.",
}

STYLE_TEMPLATES = {
    "minimal": {
        "with_product": "Minimalist studio backdrop in {colors}, soft even lighting, generous empty space in the centre for a product, premium advertising photography.",
        "without_product": "Minimalist hero shot of the product on a clean background in {colors}, studio lighting, sharp detail, high-end commercial photography, no text.",
    },
    "gradient": {
        "with_product": "Smooth gradient backdrop blending {colors}, subtle bokeh and light rays, clear central space for a product, contemporary tech aesthetic.",
        "without_product": "Product floating over a flowing gradient of {colors}, dramatic reflective lighting, modern tech advertising visual, no text.",
    },
    "abstract": {
        "with_product": "Abstract artistic backdrop with shapes and textures in {colors}, expressive but calm around a clear central focal area for a product.",
        "without_product": "Product framed by bold abstract shapes and textures in {colors}, gallery-grade commercial art direction, high contrast, no text.",
    },
    "lifestyle": {
        "with_product": "Lifestyle setting: {scene}. Natural warm light, palette complementing {colors}, shallow depth of field, open foreground for a product.",
        "without_product": "Product in use within {scene}. Natural aspirational light, palette drawing on {colors}, authentic lifestyle photography, no text.",
    },
}

SCENE_CONTEXTS = {
    "Tech": "a modern home office or co-working space",
    "SaaS": "a clean desk with a laptop and coffee",
    "Finance": "a professional office or upscale home",
    "Health": "a bright wellness space or natural setting",
    "E-commerce": "a stylish living room or trendy cafe",
    "Food": "a beautiful kitchen or dining table",
    "Fashion": "an urban street or minimalist studio",
}
DEFAULT_SCENE = "a modern aspirational environment that fits the brand"


class PromptGenerator:
    """Handles image prompt and ad copy generation through an OpenAI-compatible chat API."""

    def __init__(self, config: Config, logger: AdForgeLogger, client: OpenAI = None):
        self.config = config
        self.logger = logger
        self.client = client or OpenAI(
            api_key=os.getenv("OPENROUTER_API_KEY"),
            base_url=self.config.LLM_BASE_URL,
            timeout=self.config.HTTP_TIMEOUT,
        )

    def create_image_prompt(
        self, context: AdContext, style: str, has_reference_image: bool = False, custom_instructions: str = None
    ) -> TextResult:
        """Write a Flux prompt for the given ad context."""
        self.logger.info(f"Creating image prompt for {context.target_name} ({style})...")

        template = STYLE_TEMPLATES.get(style, STYLE_TEMPLATES["minimal"])
        base_template = template["with_product" if has_reference_image else "without_product"]
        color_string = f"{context.colors.get('primary')}, {context.colors.get('secondary')}, and {context.colors.get('accent')}"
        scene = SCENE_CONTEXTS.get(context.industry, DEFAULT_SCENE)

        system_prompt = f"""
            You are an expert prompt engineer for Flux, a state-of-the-art image generator.
            Write one prompt for a {'product photography backdrop with a clear central space for the product' if has_reference_image else 'standalone ad visual'}.

            Requirements:
            - Start with the main subject or scene
            - Specify lighting and the colour palette explicitly
            - Name a photography or art style
            - Add quality boosters such as "professional photography", "sharp focus"
            - No text, logos, watermarks, hands or faces

            Template to enhance:
            {base_template.format(colors=color_string, scene=scene)}

            Return ONLY the final prompt."""

        product_section = ""
        if context.is_product_ad:
            product_section = f"""
            Product being advertised:
                - Name: {context.product_name}
                - Description: {context.product_description}
                - Key benefits: {', '.join(context.selling_points) or 'innovative, high-quality'}
                - Promotion angle: {context.promotion_angle or 'showcase the product'}
            The image must clearly represent this specific product."""

        user_prompt = f"""
            Create a Flux image prompt for:

            Brand: {context.company_name}
            Industry: {context.industry}
            Visual style: {context.visual_style}
            Personality: {', '.join(context.personality) or 'professional, modern'}
            Colour palette: {color_string}
            {product_section}
            Ad style: {style}
            {f'Special instructions: {custom_instructions}' if custom_instructions else ''}"""

        result = self._chat(
            system_prompt,
            user_prompt,
            temperature=self.config.PROMPT_TEMPERATURE,
            max_tokens=self.config.PROMPT_MAX_TOKENS,
        )
        result.text = clean_prompt(result.text)
        if not result.text:
            raise ProviderError(self.config.LLM_SERVICE, "empty image prompt")

        self.logger.info(f"Image prompt: {' '.join(result.text.split()[:10])}")
        return result

    def create_ad_copy(self, context: AdContext, style: str, custom_instructions: str = None) -> TextResult:
        """Ask for ad copy as a JSON object; parsing is left to the caller."""
        self.logger.info(f"Writing ad copy for {context.target_name}...")

        system_prompt = f"""
            You are an advertising copywriter. Write copy that sounds like the brand's own marketing team.

            Copy rules:
            - headline: 3-8 words, a hook, no clickbait
            - body: 1-2 sentences, benefits over features
            - cta: action verb plus outcome, 2-4 words
            - hashtags: branded, industry and trending, no spaces

            Style direction: {STYLE_GUIDELINES.get(style, 'Professional and engaging')}

            Return ONLY a JSON object:
            {{"headline": "...", "body": "...", "cta": "...", "hashtags": ["#Tag1", "#Tag2", "#Tag3", "#Tag4"]}}"""

        selling_points = "\n".join(f"{i + 1}. {point}" for i, point in enumerate(context.selling_points))
        user_prompt = f"""
            Brand: {context.company_name}
            Industry: {context.industry}
            {f'Product: {context.product_name} - {context.product_description}' if context.is_product_ad else ''}
            Target audience: {context.target_audience}
            Voice/tone: {context.voice_tone}
            Key selling points:
            {selling_points}
            {f'Promotion angle: {context.promotion_angle}' if context.promotion_angle else ''}

            Ad style: {style}
            {f'Special instructions: {custom_instructions}' if custom_instructions else ''}"""

        return self._chat(
            system_prompt,
            user_prompt,
            temperature=self.config.COPY_TEMPERATURE,
            max_tokens=self.config.COPY_MAX_TOKENS,
        )

    def _chat(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> TextResult:
        try:
            response = self.client.chat.completions.create(
                model=self.config.LLM_MODEL,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as e:
            self.logger.error(f"Chat completion failed: {e}")
            raise ProviderError(self.config.LLM_SERVICE, str(e)) from e

        try:
            content = response.choices[0].message.content or ""
        except (AttributeError, IndexError) as e:
            raise ProviderError(self.config.LLM_SERVICE, f"malformed response: {e}") from e

        usage = getattr(response, "usage", None)
        return TextResult(
            text=content.strip(),
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )


def clean_prompt(text: str) -> str:
    """Unwrap code fences and strip surrounding quotes the model sometimes adds."""
    text = re.sub(r"```(?:\w+)?\s*([\s\S]*?)```", r"\1", text).strip()
    return text.strip('"').strip("'").strip()
