import pytest

from errors import MalformedLessonError
from lesson_schema import ActivityItem, KeyStage, LessonContent, SlideSpec, SlideType, coerce_lesson


def test_camel_case_and_snake_case_names(sample_lesson):
    lesson = coerce_lesson(sample_lesson)
    assert lesson.learning_question == "Why do animals live where they do?"
    assert lesson.resource_content.items[0].table_questions == ["What is a pond?", "Name one pond animal."]

    snake = LessonContent(slides=[], learning_question="Q?", key_stage="ks1")
    assert snake.learning_question == "Q?"
    assert snake.key_stage is KeyStage.KS1


@pytest.mark.parametrize("raw, expected", [
    ("KS 1", KeyStage.KS1),
    ("ks2", KeyStage.KS2),
    ("", KeyStage.KS2),
    (None, KeyStage.KS2),
])
def test_key_stage_normalised(raw, expected):
    assert coerce_lesson({"slides": [], "keyStage": raw}).key_stage is expected


def test_invalid_key_stage_is_malformed():
    with pytest.raises(MalformedLessonError):
        coerce_lesson({"slides": [], "keyStage": "ks9"})


def test_slide_content_list_becomes_dash_lines():
    spec = SlideSpec.model_validate({"title": "x", "content": ["one", " ", "two"]})
    assert spec.content == "- one\n- two"


def test_unknown_slide_type_is_kept_as_text():
    spec = SlideSpec.model_validate({"title": "x", "type": "Brainstorm"})
    assert spec.type == "brainstorm"
    assert spec.slide_type is None
    assert SlideSpec(title="x", type="PLENARY").slide_type is SlideType.PLENARY


def test_legacy_content_field_maps_to_content_text():
    item = ActivityItem.model_validate({"title": "Read", "content": "A passage."})
    assert item.content_text == "A passage."


def test_blank_objectives_and_resources_dropped():
    lesson = coerce_lesson({"slides": [], "objectives": ["", "  ", "Count"], "resources": None})
    assert lesson.objectives == ["Count"]
    assert lesson.resources == []


def test_subject_defaults_to_general():
    assert coerce_lesson({"slides": [], "subject": None}).subject == "general"


def test_coerce_returns_existing_model_unchanged(sample_lesson):
    lesson = coerce_lesson(sample_lesson)
    assert coerce_lesson(lesson) is lesson


@pytest.mark.parametrize("bad", [42, "lesson", None, [], {"title": "x"}])
def test_coerce_rejects_malformed_input(bad):
    with pytest.raises(MalformedLessonError):
        coerce_lesson(bad)
