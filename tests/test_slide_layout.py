import pytest
from pptx import Presentation
from pptx.enum.shapes import MSO_SHAPE_TYPE

from images import ImageLoader
from lesson_schema import SlideSpec
from slide_layout import (
    LONG_LINE_THRESHOLD,
    ContentShape,
    PageKind,
    SlideLayout,
    classify_content,
    image_frames,
    render_slide,
    select_layout,
    slide_style,
)
from themes import resolve_theme


@pytest.mark.parametrize("count, layout", [
    (0, SlideLayout.TEXT_ONLY),
    (1, SlideLayout.ONE_IMAGE),
    (2, SlideLayout.TWO_IMAGES),
    (3, SlideLayout.IMAGE_GRID),
    (4, SlideLayout.IMAGE_GRID),
    (7, SlideLayout.IMAGE_GRID),
])
def test_select_layout(count, layout):
    assert select_layout(count) is layout


def test_grid_leaves_fourth_cell_empty_for_three_images():
    assert len(image_frames(SlideLayout.IMAGE_GRID, 3)) == 3
    assert len(image_frames(SlideLayout.IMAGE_GRID, 4)) == 4


def test_stacked_frames_do_not_overlap():
    top, bottom = image_frames(SlideLayout.TWO_IMAGES, 2)
    assert top.y + top.h < bottom.y


class TestClassifyContent:
    def test_empty(self):
        assert classify_content("  \n ") == (ContentShape.EMPTY, [])

    def test_marked_lines_become_list(self):
        shape, units = classify_content("- one\n• two\nthree")
        assert shape is ContentShape.LIST
        assert units == ["one", "two", "three"]

    def test_long_single_line_split_into_sentences(self):
        text = "Plants need light. They also need water! Do they need soil? " * 2
        assert len(text.strip()) > LONG_LINE_THRESHOLD
        shape, units = classify_content(text)
        assert shape is ContentShape.RUN_ON
        assert units[:3] == ["Plants need light.", "They also need water!", "Do they need soil?"]

    def test_list_marker_takes_precedence_over_length(self):
        shape, units = classify_content("- " + "x" * (LONG_LINE_THRESHOLD + 50) + ". More text.")
        assert shape is ContentShape.LIST
        assert len(units) == 1

    def test_short_plain_text_is_paragraph(self):
        assert classify_content("What is a habitat?") == (ContentShape.PARAGRAPH, ["What is a habitat?"])


def test_unknown_slide_type_uses_default_style():
    style = slide_style(SlideSpec(title="x", type="brainstorm"))
    assert style.label == "LESSON"
    assert slide_style(SlideSpec(title="x", type="Starter")).label == "STARTER"


def _texts(slide):
    return [shape.text_frame.text for shape in slide.shapes if shape.has_text_frame]


def test_render_slide_keeps_title_when_content_empty():
    prs = Presentation()
    page = render_slide(prs, SlideSpec(title="Empty"), resolve_theme("art"), [], 0)
    assert page.kind is PageKind.CONTENT
    assert page.layout is SlideLayout.TEXT_ONLY
    assert "Empty" in _texts(page.slide)


def test_render_slide_places_images_and_notes(png_path):
    prs = Presentation()
    images = ImageLoader().load_all([str(png_path)] * 6)
    spec = SlideSpec(title="Pictures", content="- a\n- b", notes="Point at each picture.")
    page = render_slide(prs, spec, resolve_theme("history"), images, 2)

    pictures = [s for s in page.slide.shapes if s.shape_type == MSO_SHAPE_TYPE.PICTURE]
    assert page.layout is SlideLayout.IMAGE_GRID
    assert page.image_count == 4 and len(pictures) == 4
    assert "Teacher Note: Point at each picture." in _texts(page.slide)
    assert page.slide.notes_slide.notes_text_frame.text == "Point at each picture."
