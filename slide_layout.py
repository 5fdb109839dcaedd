"""Positions one lesson slide on a widescreen python-pptx page.

All geometry is in inches on a 13.333 x 7.5 canvas. A slide is either
text-only or text-left/images-right, with the image column split by count.
"""
import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from io import BytesIO
from types import MappingProxyType
from typing import Callable, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from pptx.dml.color import RGBColor
from pptx.enum.shapes import MSO_SHAPE
from pptx.enum.text import MSO_ANCHOR, PP_ALIGN
from pptx.util import Inches, Pt

from images import MAX_SLIDE_IMAGES
from lesson_schema import SlideSpec, SlideType
from themes import Theme

logger = logging.getLogger(__name__)

# ---- Canvas ------------------------------------------------------------------

SLIDE_WIDTH = 13.333
SLIDE_HEIGHT = 7.5
FONT_FACE = "Comic Sans MS"

HEADER_BAND_HEIGHT = 0.8
TITLE_Y = 1.0
TITLE_HEIGHT = 0.7
UNDERLINE_Y = 1.7
BODY_Y = 1.9
BODY_BOTTOM = 6.7
FOOTER_Y = 6.8
FOOTER_HEIGHT = 0.7

TEXT_ONLY_X = 0.7
TEXT_ONLY_WIDTH = 11.9
TEXT_ONLY_FONT = 28

COLUMN_WIDTH = 6.0          # ~45% of the page width
TEXT_COLUMN_X = 0.5
IMAGE_COLUMN_X = 6.83
IMAGE_COLUMN_HEIGHT = 4.6
IMAGE_GAP = 0.2
TWO_COLUMN_FONT = 24

BULLET_INDENT = 0.3
BULLET_DOT = 0.12
BULLET_GAP = 0.12
LINE_SPACING = 1.2
# Average glyph width as a fraction of the font size, for wrap estimates.
AVG_CHAR_WIDTH_EM = 0.5

# ---- Content classification --------------------------------------------------

LIST_MARKERS: Tuple[str, ...] = ("-", "•")
# A single unmarked line longer than this is split into one bullet per sentence.
LONG_LINE_THRESHOLD = 100
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")
_MARKER_PREFIX = re.compile(r"^[-•]\s*")


class ContentShape(str, Enum):
    EMPTY = "empty"
    LIST = "list"
    RUN_ON = "runOn"
    PARAGRAPH = "paragraph"


def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in _SENTENCE_END.split(text.strip()) if s.strip()]


def classify_content(content: Optional[str]) -> Tuple[ContentShape, List[str]]:
    """Classify slide body text and return its units.

    Precedence: any line starting with a list marker makes the whole body a
    list (markers stripped, unmarked lines kept as their own bullets); only
    otherwise is a single line over LONG_LINE_THRESHOLD split into sentences.
    Anything else is rendered as plain paragraphs.
    """
    lines = [line.strip() for line in (content or "").split("\n") if line.strip()]
    if not lines:
        return ContentShape.EMPTY, []
    if any(line.startswith(LIST_MARKERS) for line in lines):
        bullets = [_MARKER_PREFIX.sub("", line).strip() for line in lines]
        return ContentShape.LIST, [b for b in bullets if b]
    if len(lines) == 1 and len(lines[0]) > LONG_LINE_THRESHOLD:
        return ContentShape.RUN_ON, split_sentences(lines[0])
    return ContentShape.PARAGRAPH, lines


def estimate_wrapped_lines(text: str, width_in: float, font_pt: float) -> int:
    chars_per_line = max(1, int(width_in * 72 / (font_pt * AVG_CHAR_WIDTH_EM)))
    return max(1, math.ceil(len(text) / chars_per_line))


def line_height(font_pt: float) -> float:
    return font_pt * LINE_SPACING / 72


# ---- Layout variants ---------------------------------------------------------

class SlideLayout(str, Enum):
    TEXT_ONLY = "textOnly"
    ONE_IMAGE = "oneImage"
    TWO_IMAGES = "twoImages"
    IMAGE_GRID = "imageGrid"


class Frame(NamedTuple):
    x: float
    y: float
    w: float
    h: float


def select_layout(image_count: int) -> SlideLayout:
    count = min(max(image_count, 0), MAX_SLIDE_IMAGES)
    if count == 0:
        return SlideLayout.TEXT_ONLY
    if count == 1:
        return SlideLayout.ONE_IMAGE
    if count == 2:
        return SlideLayout.TWO_IMAGES
    return SlideLayout.IMAGE_GRID


def _no_frames(count: int) -> List[Frame]:
    return []


def _single_frame(count: int) -> List[Frame]:
    return [Frame(IMAGE_COLUMN_X, BODY_Y, COLUMN_WIDTH, IMAGE_COLUMN_HEIGHT)]


def _stacked_frames(count: int) -> List[Frame]:
    half = (IMAGE_COLUMN_HEIGHT - IMAGE_GAP) / 2
    return [
        Frame(IMAGE_COLUMN_X, BODY_Y, COLUMN_WIDTH, half),
        Frame(IMAGE_COLUMN_X, BODY_Y + half + IMAGE_GAP, COLUMN_WIDTH, half),
    ]


def _grid_frames(count: int) -> List[Frame]:
    cell_w = (COLUMN_WIDTH - IMAGE_GAP) / 2
    cell_h = (IMAGE_COLUMN_HEIGHT - IMAGE_GAP) / 2
    cells = [
        Frame(IMAGE_COLUMN_X + col * (cell_w + IMAGE_GAP), BODY_Y + row * (cell_h + IMAGE_GAP), cell_w, cell_h)
        for row in range(2) for col in range(2)
    ]
    # With three images the bottom-right cell is left empty.
    return cells[:count]


LAYOUT_FRAMES: Mapping[SlideLayout, Callable[[int], List[Frame]]] = MappingProxyType({
    SlideLayout.TEXT_ONLY: _no_frames,
    SlideLayout.ONE_IMAGE: _single_frame,
    SlideLayout.TWO_IMAGES: _stacked_frames,
    SlideLayout.IMAGE_GRID: _grid_frames,
})


def image_frames(layout: SlideLayout, image_count: int) -> List[Frame]:
    return LAYOUT_FRAMES[layout](min(image_count, MAX_SLIDE_IMAGES))


def text_region(layout: SlideLayout) -> Tuple[float, float, int]:
    """(x, width, font size) of the body text for a layout."""
    if layout is SlideLayout.TEXT_ONLY:
        return TEXT_ONLY_X, TEXT_ONLY_WIDTH, TEXT_ONLY_FONT
    return TEXT_COLUMN_X, COLUMN_WIDTH, TWO_COLUMN_FONT


# ---- Slide type styling ------------------------------------------------------

@dataclass(frozen=True)
class SlideStyle:
    color_role: str
    label: str
    icon: str

    def color(self, theme: Theme) -> str:
        return getattr(theme.colors, self.color_role)


SLIDE_STYLES: Mapping[SlideType, SlideStyle] = MappingProxyType({
    SlideType.STARTER: SlideStyle("secondary", "STARTER", "🤔"),
    SlideType.MAIN: SlideStyle("primary", "MAIN ACTIVITY", "📚"),
    SlideType.ACTIVITY: SlideStyle("accent", "ACTIVITY", "⚡"),
    SlideType.ASSESSMENT: SlideStyle("primaryDark", "ASSESSMENT", "❓"),
    SlideType.PLENARY: SlideStyle("textLight", "PLENARY", "🎓"),
})
DEFAULT_SLIDE_STYLE = SlideStyle("primary", "LESSON", "📄")


def slide_style(slide: SlideSpec) -> SlideStyle:
    kind = slide.slide_type
    return SLIDE_STYLES[kind] if kind is not None else DEFAULT_SLIDE_STYLE


# ---- Drawing helpers ---------------------------------------------------------

class PageKind(str, Enum):
    TITLE = "title"
    OBJECTIVES = "objectives"
    CONTENT = "content"
    DIFFERENTIATION = "differentiation"
    RESOURCES = "resources"


class DeckPage(NamedTuple):
    kind: PageKind
    slide: object
    layout: Optional[SlideLayout] = None
    image_count: int = 0


def rgb(hex_color: str) -> RGBColor:
    return RGBColor.from_string(hex_color.lstrip("#").upper())


def blank_layout(prs):
    return prs.slide_layouts[6] if len(prs.slide_layouts) > 6 else prs.slide_layouts[-1]


def set_background(slide, color: str) -> None:
    fill = slide.background.fill
    fill.solid()
    fill.fore_color.rgb = rgb(color)


def add_box(slide, x: float, y: float, w: float, h: float, fill: str,
            shape=MSO_SHAPE.RECTANGLE, line: Optional[str] = None, line_width: float = 0):
    box = slide.shapes.add_shape(shape, Inches(x), Inches(y), Inches(w), Inches(h))
    box.fill.solid()
    box.fill.fore_color.rgb = rgb(fill)
    if line:
        box.line.color.rgb = rgb(line)
        box.line.width = Pt(line_width or 1)
    else:
        box.line.fill.background()
    box.shadow.inherit = False
    return box


def add_text(slide, text: str, x: float, y: float, w: float, h: float, size: float,
             color: Optional[str] = None, bold: bool = False, italic: bool = False,
             align=None, anchor=MSO_ANCHOR.TOP):
    box = slide.shapes.add_textbox(Inches(x), Inches(y), Inches(w), Inches(h))
    tf = box.text_frame
    tf.word_wrap = True
    tf.vertical_anchor = anchor
    for i, line in enumerate(text.split("\n")):
        p = tf.paragraphs[0] if i == 0 else tf.add_paragraph()
        if align is not None:
            p.alignment = align
        run = p.add_run()
        run.text = line
        font = run.font
        font.name = FONT_FACE
        font.size = Pt(size)
        font.bold = bold
        font.italic = italic
        if color:
            font.color.rgb = rgb(color)
    return box


def add_picture_contained(slide, stream: BytesIO, frame: Frame):
    """Add a picture scaled to fit inside ``frame`` and centred in it."""
    stream.seek(0)
    pic = slide.shapes.add_picture(stream, Inches(frame.x), Inches(frame.y))
    box_w, box_h = Inches(frame.w), Inches(frame.h)
    scale = min(box_w / pic.width, box_h / pic.height)
    width, height = int(pic.width * scale), int(pic.height * scale)
    pic.width, pic.height = width, height
    pic.left = Inches(frame.x) + (box_w - width) // 2
    pic.top = Inches(frame.y) + (box_h - height) // 2
    return pic


# ---- Slide rendering ---------------------------------------------------------

def render_header(slide, spec: SlideSpec, theme: Theme, index: int) -> None:
    style = slide_style(spec)
    band_color = style.color(theme)
    add_box(slide, 0, 0, SLIDE_WIDTH, HEADER_BAND_HEIGHT, band_color)
    add_text(slide, style.icon, 0.2, 0.1, 0.6, 0.6, 32, align=PP_ALIGN.CENTER, anchor=MSO_ANCHOR.MIDDLE)
    add_text(slide, style.label, 0.9, 0.1, 5, 0.6, 18, color=theme.colors.white, bold=True,
             anchor=MSO_ANCHOR.MIDDLE)
    add_text(slide, spec.title.strip() or f"Slide {index + 1}", 0.5, TITLE_Y, SLIDE_WIDTH - 1.0, TITLE_HEIGHT,
             40, color=theme.colors.text, bold=True)
    add_box(slide, 0.5, UNDERLINE_Y, 2, 0.05, band_color)


def render_body(slide, content: str, layout: SlideLayout, theme: Theme) -> ContentShape:
    shape, units = classify_content(content)
    x, width, font_pt = text_region(layout)

    if shape is ContentShape.PARAGRAPH:
        add_text(slide, "\n".join(units), x, BODY_Y, width, BODY_BOTTOM - BODY_Y, font_pt, color=theme.colors.text)
    elif shape in (ContentShape.LIST, ContentShape.RUN_ON):
        y = BODY_Y
        text_w = width - BULLET_INDENT
        for bullet in units:
            rows = estimate_wrapped_lines(bullet, text_w, font_pt)
            height = rows * line_height(font_pt)
            add_box(slide, x, y + 0.15, BULLET_DOT, BULLET_DOT, theme.colors.primary, shape=MSO_SHAPE.OVAL)
            add_text(slide, bullet, x + BULLET_INDENT, y, text_w, height, font_pt, color=theme.colors.text)
            y += height + BULLET_GAP
    return shape


def render_footer(slide, notes: Optional[str], theme: Theme) -> None:
    if not notes or not notes.strip():
        return
    add_box(slide, 0, FOOTER_Y, SLIDE_WIDTH, FOOTER_HEIGHT, theme.colors.highlight)
    add_text(slide, f"Teacher Note: {notes.strip()}", 0.2, FOOTER_Y, SLIDE_WIDTH - 0.4, FOOTER_HEIGHT, 14,
             color=theme.colors.textLight, italic=True, anchor=MSO_ANCHOR.MIDDLE)
    slide.notes_slide.notes_text_frame.text = notes.strip()


def render_slide(prs, spec: SlideSpec, theme: Theme, images: Sequence[BytesIO], index: int) -> DeckPage:
    """Add one content page for ``spec``; at most MAX_SLIDE_IMAGES images are placed."""
    images = list(images)[:MAX_SLIDE_IMAGES]
    layout = select_layout(len(images))

    slide = prs.slides.add_slide(blank_layout(prs))
    set_background(slide, theme.colors.background)
    render_header(slide, spec, theme, index)
    render_body(slide, spec.content, layout, theme)
    for stream, frame in zip(images, image_frames(layout, len(images))):
        add_picture_contained(slide, stream, frame)
    render_footer(slide, spec.notes, theme)

    logger.debug("Slide %d rendered with layout %s", index + 1, layout.value)
    return DeckPage(PageKind.CONTENT, slide, layout, len(images))
