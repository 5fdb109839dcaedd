import pytest
from pptx import Presentation
from pptx.util import Inches

from deck import assemble_deck, build_deck
from errors import ArtifactWriteError, MalformedLessonError, RenderError
from slide_layout import PageKind, SlideLayout


def page_kinds(pages):
    return [p.kind for p in pages]


def expected_count(lesson):
    diff = lesson.get("differentiation") or {}
    return (len(lesson["slides"]) + 1
            + (1 if lesson.get("objectives") else 0)
            + (1 if (diff.get("support") or diff.get("stretch")) else 0)
            + (1 if lesson.get("resources") else 0))


@pytest.mark.parametrize("drop", [(), ("objectives",), ("differentiation",), ("resources",),
                                  ("objectives", "differentiation", "resources")])
def test_page_count_and_order(sample_lesson, drop):
    for key in drop:
        sample_lesson.pop(key)
    _, pages = build_deck(sample_lesson)

    assert len(pages) == expected_count(sample_lesson)
    kinds = page_kinds(pages)
    assert kinds[0] is PageKind.TITLE
    order = [PageKind.TITLE, PageKind.OBJECTIVES, PageKind.CONTENT, PageKind.DIFFERENTIATION, PageKind.RESOURCES]
    assert kinds == sorted(kinds, key=order.index)
    assert kinds.count(PageKind.CONTENT) == len(sample_lesson["slides"])


def test_empty_differentiation_is_skipped(sample_lesson):
    sample_lesson["differentiation"] = {"support": "  ", "stretch": None}
    _, pages = build_deck(sample_lesson)
    assert PageKind.DIFFERENTIATION not in page_kinds(pages)


def test_habitat_hook_scenario(tmp_path, make_image):
    image = make_image(tmp_path / "a.png")
    lesson = {"slides": [{"title": "Hook", "type": "starter", "content": "What is a habitat?",
                          "imageSuggestions": ["habitat diagram"]}]}
    _, pages = build_deck(lesson, {"habitat diagram": str(image)})

    assert page_kinds(pages) == [PageKind.TITLE, PageKind.CONTENT]
    assert pages[1].layout is SlideLayout.ONE_IMAGE
    assert pages[1].image_count == 1


def test_missing_image_files_fall_back_to_text_only(tmp_path):
    lesson = {"slides": [{"title": "Hook", "imageSuggestions": ["gone"]}]}
    _, pages = build_deck(lesson, {"gone": str(tmp_path / "gone.png")})
    assert pages[1].layout is SlideLayout.TEXT_ONLY


def test_assemble_deck_writes_widescreen_file(sample_lesson, tmp_path):
    out = tmp_path / "decks" / "lesson.pptx"
    data = assemble_deck(sample_lesson, out)

    assert out.read_bytes() == data
    prs = Presentation(str(out))
    assert len(prs.slides) == expected_count(sample_lesson)
    assert prs.slide_width == Inches(13.333)
    title_texts = [s.text_frame.text for s in prs.slides[0].shapes if s.has_text_frame]
    assert "Living Things and Their Habitats" in title_texts


def test_assemble_deck_without_path_only_returns_bytes(sample_lesson, tmp_path):
    data = assemble_deck(sample_lesson)
    assert data[:2] == b"PK"
    assert list(tmp_path.iterdir()) == []


@pytest.mark.parametrize("lesson", [
    "not a lesson",
    None,
    {"title": "No slides here"},
    {"slides": []},
    {"slides": "nope"},
])
def test_malformed_lessons_fail_before_writing(lesson, tmp_path):
    out = tmp_path / "deck.pptx"
    with pytest.raises(MalformedLessonError):
        assemble_deck(lesson, out)
    assert not out.exists()


def test_malformed_lesson_error_is_value_and_render_error():
    with pytest.raises(ValueError):
        assemble_deck({"slides": []})
    with pytest.raises(RenderError):
        assemble_deck({"slides": []})


def test_write_failure_is_typed(sample_lesson, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    with pytest.raises(ArtifactWriteError):
        assemble_deck(sample_lesson, blocker / "deck.pptx")
