from types import SimpleNamespace

import pytest

from adforge.config import Config
from adforge.errors import ProviderError
from adforge.prompt_generation import AdContext, PromptGenerator, clean_prompt


class FakeCompletions:
    def __init__(self, content="", error=None):
        self.content = content
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        usage = SimpleNamespace(prompt_tokens=321, completion_tokens=45)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=usage)


def _generator(logger, **kwargs):
    completions = FakeCompletions(**kwargs)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return PromptGenerator(Config(), logger, client=client), completions


def _context(**overrides):
    fields = dict(
        company_name="Acme",
        industry="Outdoor",
        target_audience="Hikers",
        voice_tone="Bold",
        visual_style="Rugged",
        personality=["adventurous"],
        colors={"primary": "#112233", "secondary": "#FFFFFF", "accent": "#FF0000"},
        selling_points=["Waterproof"],
    )
    fields.update(overrides)
    return AdContext(**fields)


def test_clean_prompt():
    assert clean_prompt('```\n"A boot on a rock"\n```') == "A boot on a rock"
    assert clean_prompt("'Plain prompt'") == "Plain prompt"


def test_image_prompt_reports_token_usage(logger):
    generator, completions = _generator(logger, content="```text\nA boot on wet granite, golden hour\n```")

    result = generator.create_image_prompt(
        _context(product_name="Trail Boot", product_description="Hiking boot"), "lifestyle", custom_instructions="Autumn"
    )

    assert result.text == "A boot on wet granite, golden hour"
    assert (result.input_tokens, result.output_tokens) == (321, 45)
    call = completions.calls[0]
    assert call["model"] == Config.LLM_MODEL
    assert call["temperature"] == Config.PROMPT_TEMPERATURE
    user_prompt = call["messages"][1]["content"]
    assert "Trail Boot" in user_prompt
    assert "Autumn" in user_prompt
    assert "#112233" in user_prompt


def test_empty_image_prompt_is_an_error(logger):
    generator, _ = _generator(logger, content="   ")

    with pytest.raises(ProviderError):
        generator.create_image_prompt(_context(), "minimal")


def test_client_errors_become_provider_errors(logger):
    generator, _ = _generator(logger, error=RuntimeError("401 unauthorized"))

    with pytest.raises(ProviderError) as exc_info:
        generator.create_ad_copy(_context(), "minimal")
    assert exc_info.value.service == Config.LLM_SERVICE


def test_ad_copy_returns_raw_text(logger):
    generator, completions = _generator(logger, content='{"headline": "Go"}')

    result = generator.create_ad_copy(_context(promotion_angle="Built for rain"), "abstract")

    assert result.text == '{"headline": "Go"}'
    assert completions.calls[0]["max_tokens"] == Config.COPY_MAX_TOKENS
    assert "Built for rain" in completions.calls[0]["messages"][1]["content"]
