"""Builds the lesson slide deck.

Page order is fixed: title, objectives, one page per lesson slide,
differentiation, resources. Optional pages are skipped when their data is
missing. The deck is built and serialised in memory before anything is
written to disk.
"""
import logging
from io import BytesIO
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

from pptx import Presentation
from pptx.enum.shapes import MSO_SHAPE
from pptx.enum.text import MSO_ANCHOR, PP_ALIGN
from pptx.util import Inches

from artifacts import write_artifact
from errors import MalformedLessonError, RenderError
from images import ImageLoader, ImageMap, resolve_slide_images
from lesson_schema import LessonContent, coerce_lesson
from slide_layout import (
    SLIDE_HEIGHT,
    SLIDE_WIDTH,
    DeckPage,
    PageKind,
    add_box,
    add_text,
    blank_layout,
    render_slide,
    set_background,
)
from themes import VISUAL_ICONS, Theme, resolve_theme

logger = logging.getLogger(__name__)

DECK_AUTHOR = "LessonLaunch"

SUPPORT_FILL = "E3F2FD"
STRETCH_FILL = "FFF3E0"
OBJECTIVE_ROW_HEIGHT = 0.8
OBJECTIVE_ROW_STEP = 1.0
PAGE_HEADING_SIZE = 44


def _new_presentation(lesson: LessonContent):
    prs = Presentation()
    prs.slide_width = Inches(SLIDE_WIDTH)
    prs.slide_height = Inches(SLIDE_HEIGHT)
    prs.core_properties.author = DECK_AUTHOR
    prs.core_properties.title = lesson.title or "Lesson"
    prs.core_properties.subject = lesson.subject
    return prs


def _interior_page(prs, theme: Theme, heading: str):
    slide = prs.slides.add_slide(blank_layout(prs))
    set_background(slide, theme.colors.background)
    add_text(slide, heading, 0.5, 0.5, SLIDE_WIDTH - 1.0, 0.9, PAGE_HEADING_SIZE,
             color=theme.colors.primary, bold=True)
    return slide


# ---- Fixed pages -------------------------------------------------------------

def render_title_page(prs, lesson: LessonContent, theme: Theme) -> DeckPage:
    slide = prs.slides.add_slide(blank_layout(prs))
    set_background(slide, theme.colors.primary)
    white = theme.colors.white

    add_text(slide, f"{theme.icon} {theme.name} | {lesson.key_stage.value.upper()}",
             0.5, 0.5, SLIDE_WIDTH - 1.0, 0.6, 20, color=white, align=PP_ALIGN.CENTER)
    add_text(slide, lesson.title or "Lesson", 0.5, 2.0, SLIDE_WIDTH - 1.0, 1.6, 60, color=white, bold=True,
             align=PP_ALIGN.CENTER, anchor=MSO_ANCHOR.MIDDLE)
    if lesson.learning_question:
        add_text(slide, lesson.learning_question, 1.0, 4.1, SLIDE_WIDTH - 2.0, 1.0, 32, color=white,
                 italic=True, align=PP_ALIGN.CENTER)
    return DeckPage(PageKind.TITLE, slide)


def render_objectives_page(prs, lesson: LessonContent, theme: Theme) -> DeckPage:
    slide = _interior_page(prs, theme, f"{VISUAL_ICONS['objectives']} Learning Objectives")
    count = len(lesson.objectives)
    step = min(OBJECTIVE_ROW_STEP, (SLIDE_HEIGHT - 2.3) / count)
    row_h = min(OBJECTIVE_ROW_HEIGHT, step - 0.1)

    y = 1.8
    for objective in lesson.objectives:
        add_box(slide, 0.8, y, SLIDE_WIDTH - 1.6, row_h, theme.colors.white, shape=MSO_SHAPE.ROUNDED_RECTANGLE,
                line=theme.colors.secondary, line_width=2)
        add_text(slide, objective, 1.0, y, SLIDE_WIDTH - 2.0, row_h, 28 if row_h >= 0.7 else 20,
                 color=theme.colors.text, anchor=MSO_ANCHOR.MIDDLE)
        y += step
    return DeckPage(PageKind.OBJECTIVES, slide)


def render_differentiation_page(prs, lesson: LessonContent, theme: Theme) -> DeckPage:
    slide = _interior_page(prs, theme, "Differentiation")
    diff = lesson.differentiation
    column_w = (SLIDE_WIDTH - 1.6) / 2

    columns = (
        ("Support", diff.support, SUPPORT_FILL, theme.colors.primary, 0.5),
        ("Stretch", diff.stretch, STRETCH_FILL, theme.colors.accent, 0.5 + column_w + 0.6),
    )
    for label, text, fill, label_color, x in columns:
        if not (text or "").strip():
            continue
        add_box(slide, x, 1.8, column_w, 5.0, fill)
        add_text(slide, label, x + 0.2, 2.0, column_w - 0.4, 0.6, 30, color=label_color, bold=True)
        add_text(slide, text.strip(), x + 0.2, 2.7, column_w - 0.4, 3.9, 22, color=theme.colors.text)
    return DeckPage(PageKind.DIFFERENTIATION, slide)


def render_resources_page(prs, lesson: LessonContent, theme: Theme) -> DeckPage:
    slide = _interior_page(prs, theme, "Resources Needed")
    items = "\n".join(f"• {r.strip()}" for r in lesson.resources)
    add_text(slide, items, 1.0, 1.8, SLIDE_WIDTH - 2.0, 5.0, 28, color=theme.colors.text)
    return DeckPage(PageKind.RESOURCES, slide)


# ---- Assembly ----------------------------------------------------------------

def build_deck(lesson: Any, image_map: Optional[ImageMap] = None,
               loader: Optional[ImageLoader] = None) -> Tuple[Any, List[DeckPage]]:
    """Render every page in memory and return (presentation, pages)."""
    lesson = coerce_lesson(lesson)
    if not lesson.slides:
        raise MalformedLessonError("lesson has no slides to render")

    loader = loader or ImageLoader()
    theme = resolve_theme(lesson.subject)
    prs = _new_presentation(lesson)

    pages = [render_title_page(prs, lesson, theme)]
    if lesson.objectives:
        pages.append(render_objectives_page(prs, lesson, theme))
    for index, spec in enumerate(lesson.slides):
        images = loader.load_all(resolve_slide_images(spec, image_map))
        pages.append(render_slide(prs, spec, theme, images, index))
    if lesson.differentiation is not None and not lesson.differentiation.is_empty:
        pages.append(render_differentiation_page(prs, lesson, theme))
    if lesson.resources:
        pages.append(render_resources_page(prs, lesson, theme))
    return prs, pages


def assemble_deck(lesson: Any, output_path: Optional[Union[str, Path]] = None,
                  image_map: Optional[ImageMap] = None, loader: Optional[ImageLoader] = None) -> bytes:
    """Render the deck to .pptx bytes and, if ``output_path`` is given, write it there."""
    try:
        prs, pages = build_deck(lesson, image_map, loader)
        buf = BytesIO()
        prs.save(buf)
    except RenderError:
        raise
    except Exception as e:
        raise RenderError(f"deck rendering failed: {e}") from e

    data = buf.getvalue()
    logger.info("Deck rendered: %d pages for %r", len(pages), prs.core_properties.title)
    if output_path is not None:
        write_artifact(output_path, data)
    return data
