import pytest

from smallbot.prompts import build_system_prompt, get_prompt, load_prompts


def test_missing_file_falls_back_to_builtin_prompts(tmp_path):
    prompts = load_prompts(tmp_path / "absent.yaml")

    assert "{tone}" in prompts["system"]


def test_custom_file_overrides_and_is_cached(tmp_path):
    path = tmp_path / "prompts.yaml"
    path.write_text("system: 'Hi {tone} | {memories} | {timezone}'\nextra: more\n", encoding="utf-8")

    first = load_prompts(path)
    path.write_text("system: changed\n", encoding="utf-8")

    assert first["extra"] == "more"
    assert load_prompts(path) is first


def test_non_mapping_file_is_rejected(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_prompts(path)


def test_unknown_prompt_name_raises(tmp_path):
    with pytest.raises(KeyError):
        get_prompt("nope", tmp_path / "absent.yaml")


def test_system_prompt_without_tone_asks_for_one(tmp_path):
    prompt = build_system_prompt(None, "", "UTC", tmp_path / "absent.yaml")

    assert "Who am I and what tone should I use?" in prompt
    assert "(none)" in prompt
    assert "UTC" in prompt


def test_system_prompt_fills_tone_and_memories(tmp_path):
    path = tmp_path / "prompts.yaml"
    path.write_text("system: '{tone}|{memories}|{timezone}'\n", encoding="utf-8")

    prompt = build_system_prompt("Be brief.", "likes tea", "Asia/Tokyo", path)

    assert prompt == "## Tone and Identity\nBe brief.|likes tea|Asia/Tokyo"
