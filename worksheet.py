"""Builds the pupil worksheet (.docx) that accompanies a lesson deck.

Sections always come in the same order: header block, objectives checklist,
up to MAX_ACTIVITIES activities, the challenge section and the reflection
table. ``support_mode`` switches on the SEND scaffolding: a sentence-starter
help box per activity, fewer rows and prompts, more room to write.
"""
import logging
import re
from io import BytesIO
from pathlib import Path
from typing import Any, List, NamedTuple, Optional, Pattern, Sequence, Tuple, Union

from docx import Document
from docx.enum.table import WD_ROW_HEIGHT_RULE
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Inches, Pt, Twips

from artifacts import write_artifact
from docx_style import (
    add_page_number_field,
    add_run,
    border_paragraph,
    border_table,
    set_cell_text,
    shade_paragraph,
)
from errors import RenderError
from images import ImageLoader, ImageMap, resolve_activity_image
from lesson_schema import ActivityItem, LessonContent, coerce_lesson
from themes import VISUAL_ICONS, Theme, resolve_theme
from visual_formats import render_visual_format

logger = logging.getLogger(__name__)

FONT_FACE = "Comic Sans MS"
BODY_SIZE = 12
SUPPORT_BODY_SIZE = 14
PAGE_MARGIN = 0.75

MAX_WORKSHEET_OBJECTIVES = 4
MAX_ACTIVITIES = 3
MAX_TABLE_QUESTIONS = 6
SUPPORT_TABLE_QUESTIONS = 4
SUPPORT_GAP_FILL_QUESTIONS = 3
MAX_CHALLENGE_PROMPTS = 4
SUPPORT_CHALLENGE_PROMPTS = 3
CHALLENGE_LINES = 3
SUPPORT_CHALLENGE_LINES = 4

TABLE_ROW_HEIGHT = Twips(700)
SUPPORT_TABLE_ROW_HEIGHT = Twips(900)
ACTIVITY_IMAGE_WIDTH = Inches(4)

DEFAULT_ACTIVITY_TITLE = "Practice Task"
ANSWER_LINE = "_" * 70
BLANK_FIELD = "_______________"
CHECKBOX = "☐"
CHALLENGE_COLOR = "F44336"

SENTENCE_STARTERS: Tuple[str, ...] = (
    "I think that...",
    "This shows me...",
    "I can see that...",
    "The answer is... because...",
)

REFLECTION_PROMPTS: Tuple[str, ...] = (
    "😊 What did I do well?",
    "🤔 What did I find tricky?",
    "🎯 My next step:",
)

FALLBACK_PROMPTS: Tuple[str, ...] = (
    "Explain what you learned today and why it's important.",
    "How does this connect to something else you've learned?",
    "Can you think of a real-life example where you might use this?",
    "What question would you ask someone who wants to learn about this topic?",
)
SUPPORT_FALLBACK_PROMPTS: Tuple[str, ...] = (
    "Explain what you learned today in your own words.",
    "Draw a picture or diagram to show what you learned.",
    "Write one question you still have about this topic.",
)


# ---- Objective rewriting -----------------------------------------------------

FIRST_PERSON_PREFIX = "I can "

# Applied in order; each rule rewrites the leading phrase of an objective.
OBJECTIVE_RULES: Tuple[Tuple[Pattern, str], ...] = (
    (re.compile(r"^(students|pupils|learners) will (be able to )?", re.I), "I can "),
    (re.compile(r"^To "), "I can "),
    (re.compile(r"^understand ", re.I), "I can explain "),
    (re.compile(r"^learn (about )?", re.I), "I can describe "),
    (re.compile(r"^identify ", re.I), "I can find and name "),
    (re.compile(r"^recogni[sz]e ", re.I), "I can spot "),
    (re.compile(r"^demonstrate ", re.I), "I can show "),
)


def rewrite_objective(objective: str) -> str:
    """Turn a teacher-facing objective into an "I can ..." statement.

    >>> rewrite_objective("Students will be able to name the planets")
    'I can name the planets'
    >>> rewrite_objective("Understand photosynthesis")
    'I can explain photosynthesis'
    """
    text = (objective or "").strip()
    for pattern, replacement in OBJECTIVE_RULES:
        text = pattern.sub(replacement, text)
    if not text.lower().startswith("i can"):
        text = FIRST_PERSON_PREFIX + (text[:1].lower() + text[1:])
    return text


# ---- Document helpers --------------------------------------------------------

class Worksheet(NamedTuple):
    document: Any
    sections: List[str]
    activity_count: int


def _new_document(lesson: LessonContent, support_mode: bool):
    doc = Document()
    normal = doc.styles["Normal"]
    normal.font.name = FONT_FACE
    normal.font.size = Pt(SUPPORT_BODY_SIZE if support_mode else BODY_SIZE)

    section = doc.sections[0]
    for side in ("left_margin", "right_margin", "top_margin", "bottom_margin"):
        setattr(section, side, Inches(PAGE_MARGIN))

    doc.core_properties.title = lesson.title or "Worksheet"
    doc.core_properties.subject = lesson.subject
    return doc


def _heading(doc, text: str, color: str, size: float = 16, before: float = 12, after: float = 6):
    p = doc.add_paragraph()
    add_run(p, text, size=size, bold=True, color=color)
    p.paragraph_format.space_before = Pt(before)
    p.paragraph_format.space_after = Pt(after)
    p.paragraph_format.keep_with_next = True
    return p


def _text(doc, text: str, italic: bool = False, bold: bool = False, color: Optional[str] = None, after: float = 6):
    p = doc.add_paragraph()
    add_run(p, text, italic=italic, bold=bold, color=color)
    p.paragraph_format.space_after = Pt(after)
    return p


def render_page_furniture(doc, lesson: LessonContent, theme: Theme) -> None:
    section = doc.sections[0]
    header = section.header.paragraphs[0]
    header.alignment = WD_ALIGN_PARAGRAPH.RIGHT
    add_run(header, f"{theme.icon} {lesson.title}", size=9, color=theme.colors.textLight)

    footer = section.footer.paragraphs[0]
    footer.alignment = WD_ALIGN_PARAGRAPH.CENTER
    add_run(footer, "Page ", size=9, color=theme.colors.textLight)
    add_page_number_field(footer, size=9, color=theme.colors.textLight)


# ---- Sections ----------------------------------------------------------------

def render_title_block(doc, lesson: LessonContent, theme: Theme) -> None:
    title = doc.add_paragraph()
    title.alignment = WD_ALIGN_PARAGRAPH.CENTER
    add_run(title, lesson.title or "Worksheet", size=24, bold=True, color=theme.colors.primary)

    if lesson.learning_question:
        question = doc.add_paragraph()
        question.alignment = WD_ALIGN_PARAGRAPH.CENTER
        add_run(question, lesson.learning_question, size=14, italic=True, color=theme.colors.primaryDark)
        border_paragraph(question, sides=("top", "bottom"), size=12, color=theme.colors.primary)
        shade_paragraph(question, theme.colors.background)

    info = doc.add_paragraph()
    info.alignment = WD_ALIGN_PARAGRAPH.CENTER
    add_run(info, f"{theme.icon} {theme.name} | {lesson.key_stage.value.upper()} | "
                  f"Name: {BLANK_FIELD} | Date: {BLANK_FIELD}", size=11, color=theme.colors.text)
    info.paragraph_format.space_after = Pt(12)


def render_objectives(doc, objectives: Sequence[str], theme: Theme) -> None:
    _heading(doc, f"{VISUAL_ICONS['objectives']} Learning Objectives", theme.colors.primary)
    _text(doc, "Tick each box when you can do it!", italic=True, color=theme.colors.textLight)
    for objective in objectives[:MAX_WORKSHEET_OBJECTIVES]:
        p = doc.add_paragraph()
        add_run(p, f"{CHECKBOX}  ", size=16)
        add_run(p, rewrite_objective(objective))
        p.paragraph_format.space_after = Pt(4)


def render_help_box(doc, theme: Theme) -> None:
    table = doc.add_table(rows=1, cols=1)
    cell = table.cell(0, 0)
    set_cell_text(cell, f"{VISUAL_ICONS['keyPoint']} Help Box:", bold=True, fill=theme.colors.highlight)
    for starter in SENTENCE_STARTERS:
        add_run(cell.add_paragraph(), f"💭 {starter}", italic=True)
    border_table(table, style="dashed", size=8, color=theme.colors.accent, inside=False)
    doc.add_paragraph()


def render_passage(doc, content_text: str, theme: Theme) -> None:
    _heading(doc, f"{VISUAL_ICONS['reading']} Read this carefully:", theme.colors.primary, size=13)
    for chunk in (c.strip() for c in content_text.split("\n")):
        if not chunk:
            continue
        p = doc.add_paragraph()
        add_run(p, chunk)
        border_paragraph(p, style="double", size=6, color=theme.colors.primary)
        shade_paragraph(p, theme.colors.background)
        p.paragraph_format.space_after = Pt(0)
    doc.add_paragraph()


def render_question_table(doc, questions: Sequence[str], has_passage: bool, theme: Theme, support_mode: bool):
    cap = SUPPORT_TABLE_QUESTIONS if support_mode else MAX_TABLE_QUESTIONS
    questions = list(questions)[:cap]
    intro = "Answer these questions using the text above:" if has_passage \
        else "Complete the table using what you learned:"
    _text(doc, intro, bold=True)

    table = doc.add_table(rows=len(questions) + 1, cols=2)
    table.style = "Table Grid"
    set_cell_text(table.cell(0, 0), "Question", bold=True, center=True, fill=theme.colors.background)
    set_cell_text(table.cell(0, 1), "My Answer", bold=True, center=True, fill=theme.colors.background)
    height = SUPPORT_TABLE_ROW_HEIGHT if support_mode else TABLE_ROW_HEIGHT
    for r, question in enumerate(questions, start=1):
        row = table.rows[r]
        row.height = height
        row.height_rule = WD_ROW_HEIGHT_RULE.AT_LEAST
        set_cell_text(row.cells[0], question)
    doc.add_paragraph()
    return table


def render_gap_fill(doc, questions: Sequence[str], support_mode: bool) -> None:
    if support_mode:
        questions = list(questions)[:SUPPORT_GAP_FILL_QUESTIONS]
    _text(doc, "Fill in the missing words:", bold=True)
    for n, question in enumerate(questions, start=1):
        p = _text(doc, f"{n}. {question}")
        p.paragraph_format.left_indent = Inches(0.25)


def render_activity(doc, number: int, activity: ActivityItem, theme: Theme, support_mode: bool,
                    image_map: Optional[ImageMap], loader: ImageLoader) -> None:
    if number > 1:
        doc.add_page_break()

    header = _heading(doc, f"{VISUAL_ICONS['activity']} Activity {number}: "
                           f"{activity.title.strip() or DEFAULT_ACTIVITY_TITLE}", theme.colors.primary, size=18)
    border_paragraph(header, sides=("bottom",), size=12, color=theme.colors.primary)
    if activity.instructions.strip():
        _text(doc, activity.instructions.strip())

    if support_mode:
        render_help_box(doc, theme)

    ref = resolve_activity_image(activity, image_map)
    stream = loader.load(ref) if ref else None
    if stream is not None:
        doc.add_picture(stream, width=ACTIVITY_IMAGE_WIDTH)
        doc.paragraphs[-1].alignment = WD_ALIGN_PARAGRAPH.CENTER

    has_passage = bool((activity.content_text or "").strip())
    if has_passage:
        render_passage(doc, activity.content_text, theme)
    if activity.table_questions:
        render_question_table(doc, activity.table_questions, has_passage, theme, support_mode)
    if activity.gap_fill_questions:
        render_gap_fill(doc, activity.gap_fill_questions, support_mode)
    render_visual_format(doc, activity.visual_format, theme, support_mode)


def challenge_prompts(lesson: LessonContent, support_mode: bool) -> List[str]:
    """Open questions of the first activity, or the generic fallback set."""
    cap = SUPPORT_CHALLENGE_PROMPTS if support_mode else MAX_CHALLENGE_PROMPTS
    items = lesson.resource_content.items if lesson.resource_content else []
    prompts = [q for q in (items[0].open_questions if items else []) if q.strip()]
    if not prompts:
        prompts = list(SUPPORT_FALLBACK_PROMPTS if support_mode else FALLBACK_PROMPTS)
    return prompts[:cap]


def render_challenge(doc, lesson: LessonContent, support_mode: bool) -> None:
    _heading(doc, f"{VISUAL_ICONS['challenge']} Challenge Yourself!", CHALLENGE_COLOR, size=18, before=18)
    _text(doc, "Can you:", bold=True)
    lines = SUPPORT_CHALLENGE_LINES if support_mode else CHALLENGE_LINES
    for n, prompt in enumerate(challenge_prompts(lesson, support_mode), start=1):
        _text(doc, f"{n}. {prompt}", after=4)
        for _ in range(lines):
            _text(doc, ANSWER_LINE, color="BDBDBD", after=2)


def render_reflection(doc, theme: Theme) -> None:
    _heading(doc, f"{VISUAL_ICONS['thinking']} My Reflection", theme.colors.primary, before=18)
    table = doc.add_table(rows=len(REFLECTION_PROMPTS), cols=2)
    table.style = "Table Grid"
    for row, prompt in zip(table.rows, REFLECTION_PROMPTS):
        row.height = TABLE_ROW_HEIGHT
        row.height_rule = WD_ROW_HEIGHT_RULE.AT_LEAST
        set_cell_text(row.cells[0], prompt, bold=True, fill=theme.colors.background)


# ---- Composition -------------------------------------------------------------

def build_worksheet(lesson: Any, image_map: Optional[ImageMap] = None, support_mode: bool = False,
                    loader: Optional[ImageLoader] = None) -> Worksheet:
    lesson = coerce_lesson(lesson)
    loader = loader or ImageLoader()
    theme = resolve_theme(lesson.subject)
    doc = _new_document(lesson, support_mode)
    sections = ["header"]

    render_page_furniture(doc, lesson, theme)
    render_title_block(doc, lesson, theme)
    if lesson.objectives:
        render_objectives(doc, lesson.objectives, theme)
        sections.append("objectives")

    activities = lesson.resource_content.items[:MAX_ACTIVITIES] if lesson.resource_content else []
    for number, activity in enumerate(activities, start=1):
        render_activity(doc, number, activity, theme, support_mode, image_map, loader)
        sections.append(f"activity{number}")

    render_challenge(doc, lesson, support_mode)
    render_reflection(doc, theme)
    sections += ["challenge", "reflection"]
    return Worksheet(doc, sections, len(activities))


def compose_worksheet(lesson: Any, output_path: Optional[Union[str, Path]] = None,
                      image_map: Optional[ImageMap] = None, support_mode: bool = False,
                      loader: Optional[ImageLoader] = None) -> bytes:
    """Render the worksheet to .docx bytes and, if ``output_path`` is given, write it there."""
    try:
        worksheet = build_worksheet(lesson, image_map, support_mode, loader)
        buf = BytesIO()
        worksheet.document.save(buf)
    except RenderError:
        raise
    except Exception as e:
        raise RenderError(f"worksheet rendering failed: {e}") from e

    data = buf.getvalue()
    logger.info("Worksheet rendered: %d activities, support_mode=%s", worksheet.activity_count, support_mode)
    if output_path is not None:
        write_artifact(output_path, data)
    return data
