import pytest

from poi_guide.models import KNOWLEDGE_SECTIONS, TIERS
from poi_guide.utils.prompt_loader import PromptSet, list_prompts, load_prompt_set


def test_default_content_prompts_cover_every_tier():
    prompts = load_prompt_set("default", pipeline_type="content_generation")

    assert all(tier.value in prompts for tier in TIERS)
    assert prompts.get("brief").max_tokens == 500
    assert prompts.get("complete").temperature == 0.8


def test_default_knowledge_prompts_cover_every_section():
    prompts = load_prompt_set("default", pipeline_type="knowledge_generation")

    assert all(section in prompts for section in KNOWLEDGE_SECTIONS)
    assert prompts.get("trivia").json_mode is True
    assert prompts.get("overview").json_mode is False


def test_trivia_prompt_keeps_literal_json_example():
    template = load_prompt_set("default", pipeline_type="knowledge_generation").get("trivia")

    prompt = template.format_user_prompt(name="Pantheon", address="Rome", types="church", source_text="...")

    assert '{"trivia": [' in prompt
    assert "Pantheon" in prompt


def test_list_prompts():
    assert "default" in list_prompts("content_generation")
    assert "default" in list_prompts("knowledge_generation")


def test_missing_version(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_prompt_set("v99", prompt_dir=tmp_path)


def test_unknown_pipeline_type():
    with pytest.raises(ValueError):
        load_prompt_set("default", pipeline_type="translation")


def test_custom_prompt_dir(tmp_path):
    (tmp_path / "v2.yaml").write_text(
        "templates:\n"
        "  brief:\n"
        "    system_prompt: short\n"
        "    user_prompt_template: 'About {name}'\n"
        "    parameters:\n"
        "      max_tokens: 42\n",
        encoding="utf-8",
    )

    prompts = load_prompt_set("v2", prompt_dir=tmp_path)

    assert prompts.version == "v2"
    assert prompts.get("brief").format_user_prompt(name="Trevi") == "About Trevi"
    assert prompts.get("brief").max_tokens == 42
    with pytest.raises(KeyError):
        prompts.get("detailed")


def test_template_requires_user_prompt():
    with pytest.raises(ValueError):
        PromptSet("bad", {"templates": {"brief": {"system_prompt": "x"}}})
