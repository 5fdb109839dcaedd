import json

import pytest

import lesson_planner
from lesson_planner import (
    build_lesson_prompt,
    clean_lesson,
    clean_llm_output,
    fallback_lesson,
    plan_lesson,
    safe_json_parse,
)
from lesson_schema import coerce_lesson


def test_clean_llm_output_strips_fences_and_prose():
    raw = "Here you go:\n```json\n{\"slides\": []}\n```"
    assert clean_llm_output(raw) == '{"slides": []}'


def test_safe_json_parse(sample_lesson):
    lesson = safe_json_parse("```json\n" + json.dumps(sample_lesson) + "\n```")
    assert lesson.title == sample_lesson["title"]
    assert safe_json_parse("not json at all") is None
    assert safe_json_parse('{"title": "missing slides"}') is None


def test_prompt_lists_subject_widgets():
    prompt = build_lesson_prompt("Times tables", "Maths", "ks2", "Focus on 3s", support_mode=True)
    assert '"grid"' in prompt and '"numberLine"' in prompt
    assert '"timeline"' not in prompt
    assert "SEND" in prompt
    assert "Focus on 3s" in prompt


def test_fallback_lesson_is_renderable():
    lesson = fallback_lesson("Volcanoes", "geography", "KS2", "Magma rises.\nPressure builds.\n" * 40)
    assert lesson.slides[0].type == "starter"
    assert lesson.slides[-1].type == "plenary"
    assert len(lesson.slides) > 3
    assert all(s.content for s in lesson.slides)


def test_clean_lesson_drops_empty_and_keeps_richer_duplicate():
    lesson = coerce_lesson({"slides": [
        {"title": "Intro", "content": "short"},
        {"title": "Empty"},
        {"title": "Body", "content": "- a"},
        {"title": "Intro", "content": "a much longer introduction"},
        {"title": "", "content": "no title"},
    ]})
    cleaned = clean_lesson(lesson)
    assert [s.title for s in cleaned.slides] == ["Intro", "Body"]
    assert cleaned.slides[0].content == "a much longer introduction"


def test_plan_lesson_rejects_unknown_provider():
    with pytest.raises(ValueError, match="Unsupported provider"):
        plan_lesson("carrier-pigeon", "key", "Topic")


def test_plan_lesson_falls_back_when_model_output_is_unusable(monkeypatch):
    monkeypatch.setitem(lesson_planner.PROVIDER_CALLS, "openai", lambda api_key, prompt: "sorry, no JSON")
    lesson = plan_lesson("openai", "key", "Rivers", "geography", "ks1", "Rivers flow to the sea.")
    assert lesson.title == "Rivers"
    assert lesson.key_stage.value == "ks1"
    assert lesson.slides


def test_plan_lesson_uses_model_output(monkeypatch, sample_lesson):
    seen = {}

    def fake_call(api_key, prompt):
        seen["key"] = api_key
        return json.dumps(sample_lesson)

    monkeypatch.setitem(lesson_planner.PROVIDER_CALLS, "anthropic", fake_call)
    lesson = plan_lesson("Anthropic", "secret", "Habitats", "science")
    assert seen["key"] == "secret"
    assert [s.title for s in lesson.slides] == ["Hook", "Habitats", "Quiz"]
