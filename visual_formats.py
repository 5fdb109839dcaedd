"""Interactive worksheet widgets (grids, number lines, timelines, tables...).

Each widget is identified by a ``type`` tag coming from the lesson JSON. Tags
are parsed into the closed ``VisualFormatKind`` enum; anything that does not
parse renders nothing.
"""
import logging
import math
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from docx.shared import Pt
from docx.table import Table
from docx.text.paragraph import Paragraph

from docx_style import add_run, border_paragraph, border_table, set_cell_text
from lesson_schema import VisualFormat
from themes import Theme, subject_key

logger = logging.getLogger(__name__)

Block = Union[Paragraph, Table]


class VisualFormatKind(str, Enum):
    GRID = "grid"
    NUMBER_LINE = "numberLine"
    TIMELINE = "timeline"
    COMPARISON_TABLE = "comparisonTable"
    LABELING_DIAGRAM = "labelingDiagram"
    RESULTS_TABLE = "resultsTable"
    LABEL_MAP = "labelMap"


TYPE_ALIASES: Mapping[str, VisualFormatKind] = MappingProxyType({
    "multiplicationGrid": VisualFormatKind.GRID,
    "grid": VisualFormatKind.GRID,
    "numberLine": VisualFormatKind.NUMBER_LINE,
    "timeline": VisualFormatKind.TIMELINE,
    "thenNow": VisualFormatKind.COMPARISON_TABLE,
    "comparisonTable": VisualFormatKind.COMPARISON_TABLE,
    "labelingDiagram": VisualFormatKind.LABELING_DIAGRAM,
    "resultsTable": VisualFormatKind.RESULTS_TABLE,
    "labelMap": VisualFormatKind.LABEL_MAP,
})
_FOLDED_ALIASES = {tag.lower(): kind for tag, kind in TYPE_ALIASES.items()}

# ---- Defaults and bounds -------------------------------------------------------

DEFAULT_GRID_ROWS: Tuple[int, ...] = (2, 3, 5, 10)
DEFAULT_GRID_COLS: Tuple[int, ...] = (2, 4, 5, 10)
MAX_GRID_AXIS = 12

DEFAULT_NUMBER_LINE_MIN = 0
DEFAULT_NUMBER_LINE_MAX = 100
NUMBER_LINE_MAX_STEP = 10
MAX_NUMBER_LINE_TICKS = 21

DEFAULT_TIMELINE_POINTS = 5
MAX_TIMELINE_POINTS = 8
TIMELINE_BLANK = "___________"

DEFAULT_COMPARISON_CATEGORIES: Tuple[str, ...] = ("Item 1", "Item 2", "Item 3")
DEFAULT_COMPARISON_COLUMNS: Tuple[str, str] = ("Then", "Now")
MAX_COMPARISON_ROWS = 8

DEFAULT_RESULTS_HEADERS: Tuple[str, ...] = ("What we tested", "What happened", "What we learned")
DEFAULT_RESULTS_ROWS = 4
SUPPORT_RESULTS_ROWS = 3
MAX_RESULTS_ROWS = 10

DEFAULT_DIAGRAM_NAME = "diagram"

# Example data per widget, used to describe the expected shape to the planner.
FORMAT_TEMPLATES: Mapping[VisualFormatKind, Mapping[str, Any]] = MappingProxyType({
    VisualFormatKind.GRID: {"rows": list(DEFAULT_GRID_ROWS), "cols": list(DEFAULT_GRID_COLS)},
    VisualFormatKind.NUMBER_LINE: {"min": 0, "max": 100, "markPoints": [25, 50, 75]},
    VisualFormatKind.TIMELINE: {"events": ["Event 1", "Event 2"], "dates": ["Date 1", "Date 2"]},
    VisualFormatKind.COMPARISON_TABLE: {"categories": ["Homes", "Transport", "Schools", "Food"]},
    VisualFormatKind.LABELING_DIAGRAM: {"diagramType": "plant", "labels": ["roots", "stem", "leaves"]},
    VisualFormatKind.RESULTS_TABLE: {"headers": list(DEFAULT_RESULTS_HEADERS), "rows": 4},
    VisualFormatKind.LABEL_MAP: {"locations": ["London", "River Thames"]},
})

SUBJECT_FORMATS: Mapping[str, Tuple[VisualFormatKind, ...]] = MappingProxyType({
    "mathematics": (VisualFormatKind.GRID, VisualFormatKind.NUMBER_LINE),
    "science": (VisualFormatKind.LABELING_DIAGRAM, VisualFormatKind.RESULTS_TABLE),
    "history": (VisualFormatKind.TIMELINE, VisualFormatKind.COMPARISON_TABLE),
    "geography": (VisualFormatKind.LABEL_MAP, VisualFormatKind.COMPARISON_TABLE),
    "dt": (VisualFormatKind.LABELING_DIAGRAM, VisualFormatKind.RESULTS_TABLE),
    "pe": (VisualFormatKind.RESULTS_TABLE,),
})


def parse_kind(tag: Optional[str]) -> Optional[VisualFormatKind]:
    if not tag:
        return None
    return TYPE_ALIASES.get(tag) or _FOLDED_ALIASES.get(tag.strip().lower())


def formats_for_subject(subject: Optional[str]) -> Tuple[VisualFormatKind, ...]:
    """Widgets that suit a subject; every widget when the subject has no preference."""
    return SUBJECT_FORMATS.get(subject_key(subject), tuple(VisualFormatKind))


# ---- Small helpers -------------------------------------------------------------

def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _fmt(value: Any) -> str:
    number = _as_number(value)
    if number is None:
        return str(value)
    if abs(number - round(number)) < 1e-9:
        return str(int(round(number)))
    return f"{round(number, 2):g}"


def _strings(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [_fmt(v) if not isinstance(v, str) else v for v in value if v is not None and str(v).strip()]


def _axis(value: Any, default: Sequence[int]) -> List[Any]:
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return list(range(1, min(value, MAX_GRID_AXIS) + 1))
    if isinstance(value, (list, tuple)) and value:
        items = [v for v in value if v is not None and str(v).strip()]
        if items:
            return items[:MAX_GRID_AXIS]
    return list(default)


def _count(value: Any, default: int) -> int:
    number = _as_number(value)
    if number is None or number < 1:
        return default
    return int(number)


def _title(doc, text: str, theme: Theme) -> Paragraph:
    p = doc.add_paragraph()
    add_run(p, text, size=12, bold=True, color=theme.colors.primary)
    p.paragraph_format.space_after = Pt(7.5)
    return p


def _blank_cell(cell, padding: float = 20) -> None:
    fmt = cell.paragraphs[0].paragraph_format
    fmt.space_before = Pt(padding)
    fmt.space_after = Pt(padding)


def _note(doc, text: str, italic: bool = False, bold: bool = False, before: float = 0,
          after: float = 0) -> Paragraph:
    p = doc.add_paragraph()
    add_run(p, text, size=10, italic=italic, bold=bold)
    p.paragraph_format.space_before = Pt(before)
    p.paragraph_format.space_after = Pt(after)
    return p


# ---- Renderers -----------------------------------------------------------------

def render_grid(doc, data: Dict[str, Any], theme: Theme, support_mode: bool) -> List[Block]:
    """Row x column table with the top-left product filled in as a worked example."""
    blocks: List[Block] = [_title(doc, "📊 Complete the grid:", theme)]
    rows = _axis(data.get("rows"), DEFAULT_GRID_ROWS)
    cols = _axis(data.get("cols"), DEFAULT_GRID_COLS)

    table = doc.add_table(rows=len(rows) + 1, cols=len(cols) + 1)
    table.style = "Table Grid"
    set_cell_text(table.cell(0, 0), "×", bold=True, center=True, fill=theme.colors.background)
    for c, col in enumerate(cols, start=1):
        set_cell_text(table.cell(0, c), _fmt(col), bold=True, center=True, fill=theme.colors.background)

    for r, row in enumerate(rows, start=1):
        set_cell_text(table.cell(r, 0), _fmt(row), bold=True, center=True, fill=theme.colors.background)
        for c, col in enumerate(cols, start=1):
            cell = table.cell(r, c)
            worked = r == 1 and c == 1
            row_n, col_n = _as_number(row), _as_number(col)
            text = _fmt(row_n * col_n) if worked and row_n is not None and col_n is not None else ""
            set_cell_text(cell, text, center=True, fill=theme.colors.highlight if worked else theme.colors.white)
            _blank_cell(cell, 12.5)

    border_table(table, size=8)
    blocks.append(table)
    return blocks


def number_line_ticks(lo: Any, hi: Any, step: Any = None) -> List[float]:
    """Evenly spaced ticks from lo to hi, never more than MAX_NUMBER_LINE_TICKS."""
    lo_n = _as_number(lo)
    hi_n = _as_number(hi)
    lo_n = DEFAULT_NUMBER_LINE_MIN if lo_n is None else lo_n
    hi_n = DEFAULT_NUMBER_LINE_MAX if hi_n is None else hi_n
    if hi_n < lo_n:
        lo_n, hi_n = hi_n, lo_n
    span = hi_n - lo_n
    if not math.isfinite(span):
        lo_n, hi_n = DEFAULT_NUMBER_LINE_MIN, DEFAULT_NUMBER_LINE_MAX
        span = hi_n - lo_n
    if span == 0:
        return [lo_n]

    step_n = _as_number(step)
    if step_n is None or step_n <= 0:
        step_n = min(NUMBER_LINE_MAX_STEP, span / 10)
    if span / step_n + 1 > MAX_NUMBER_LINE_TICKS:
        step_n = span / (MAX_NUMBER_LINE_TICKS - 1)

    count = int(math.floor(span / step_n + 1e-9)) + 1
    return [lo_n + i * step_n for i in range(count)]


def render_number_line(doc, data: Dict[str, Any], theme: Theme, support_mode: bool) -> List[Block]:
    blocks: List[Block] = [_title(doc, "📏 Mark these numbers on the number line:", theme)]
    ticks = number_line_ticks(data.get("min"), data.get("max"), data.get("step") or data.get("intervals"))

    table = doc.add_table(rows=1, cols=len(ticks))
    for i, tick in enumerate(ticks):
        set_cell_text(table.cell(0, i), _fmt(tick), center=True, size=9)
    border_table(table, style="none", size=0, inside=False, bottom=("thick", 12, theme.colors.primary))
    blocks.append(table)

    mark_points = _strings(data.get("markPoints"))
    if mark_points:
        blocks.append(_note(doc, f"Mark these points: {', '.join(mark_points)}", italic=True, before=7.5))
    return blocks


def render_timeline(doc, data: Dict[str, Any], theme: Theme, support_mode: bool) -> List[Block]:
    """Events over dates; only the first date is shown, as a worked example."""
    blocks: List[Block] = [_title(doc, "📅 Complete the timeline:", theme)]
    events = _strings(data.get("events"))
    dates = _strings(data.get("dates"))
    points = min(max(len(events), len(dates)) or DEFAULT_TIMELINE_POINTS, MAX_TIMELINE_POINTS)

    table = doc.add_table(rows=2, cols=points)
    for i in range(points):
        set_cell_text(table.cell(0, i), events[i] if i < len(events) else "", center=True, size=9)
        date_cell = table.cell(1, i)
        if i == 0 and dates:
            set_cell_text(date_cell, dates[0], center=True, size=9, fill=theme.colors.highlight)
        else:
            set_cell_text(date_cell, TIMELINE_BLANK, center=True, size=9, fill=theme.colors.white)
        _blank_cell(date_cell, 10)

    border_table(table, size=4, bottom=("thick", 8, theme.colors.primary))
    blocks.append(table)
    return blocks


def render_comparison_table(doc, data: Dict[str, Any], theme: Theme, support_mode: bool) -> List[Block]:
    blocks: List[Block] = [_title(doc, "⚖️ Compare and contrast:", theme)]
    categories = _strings(data.get("categories")) or _strings(data.get("rows")) \
        or list(DEFAULT_COMPARISON_CATEGORIES)
    categories = categories[:MAX_COMPARISON_ROWS]
    columns = _strings(data.get("columns"))
    headers = columns[:2] if len(columns) >= 2 else list(DEFAULT_COMPARISON_COLUMNS)

    table = doc.add_table(rows=len(categories) + 1, cols=3)
    table.style = "Table Grid"
    for c, header in enumerate(["Category"] + headers):
        set_cell_text(table.cell(0, c), header, bold=True, center=True, fill=theme.colors.background)
    for r, category in enumerate(categories, start=1):
        set_cell_text(table.cell(r, 0), category, bold=True, fill=theme.colors.background)
        _blank_cell(table.cell(r, 1))
        _blank_cell(table.cell(r, 2))
    blocks.append(table)
    return blocks


def _drawing_area(doc, padding: float, style: str, size: int, color: str = "auto") -> Paragraph:
    p = doc.add_paragraph()
    p.paragraph_format.space_before = Pt(padding)
    p.paragraph_format.space_after = Pt(padding)
    border_paragraph(p, style=style, size=size, color=color)
    return p


def render_labeling_diagram(doc, data: Dict[str, Any], theme: Theme, support_mode: bool) -> List[Block]:
    blocks: List[Block] = [_title(doc, "🏷️ Label the diagram:", theme)]
    diagram = data.get("diagramType") or DEFAULT_DIAGRAM_NAME
    blocks.append(_note(doc, f"Draw arrows from these labels to the correct parts of the {diagram}:",
                        italic=True, after=10))
    blocks.append(_drawing_area(doc, 75, "single", 4))
    labels = _strings(data.get("labels"))
    if labels:
        blocks.append(_note(doc, f"Labels: {' • '.join(labels)}", bold=True, before=10))
    return blocks


def render_results_table(doc, data: Dict[str, Any], theme: Theme, support_mode: bool) -> List[Block]:
    blocks: List[Block] = [_title(doc, "🔬 Record your results:", theme)]
    headers = _strings(data.get("headers")) or _strings(data.get("columns")) or list(DEFAULT_RESULTS_HEADERS)
    row_count = min(_count(data.get("rows"), DEFAULT_RESULTS_ROWS), MAX_RESULTS_ROWS)
    if support_mode:
        row_count = min(row_count, SUPPORT_RESULTS_ROWS)

    table = doc.add_table(rows=row_count + 1, cols=len(headers))
    table.style = "Table Grid"
    for c, header in enumerate(headers):
        set_cell_text(table.cell(0, c), header, bold=True, center=True, fill=theme.colors.background)
    for r in range(1, row_count + 1):
        for c in range(len(headers)):
            _blank_cell(table.cell(r, c))
    blocks.append(table)
    return blocks


def render_label_map(doc, data: Dict[str, Any], theme: Theme, support_mode: bool) -> List[Block]:
    blocks: List[Block] = [_title(doc, "🗺️ Label the map:", theme)]
    blocks.append(_note(doc, "Mark and label these locations on the map:", italic=True, after=10))
    blocks.append(_drawing_area(doc, 100, "double", 4, theme.colors.primary))
    locations = _strings(data.get("locations"))
    if locations:
        blocks.append(_note(doc, f"Locations to mark: {' • '.join(locations)}", bold=True, before=10))
    return blocks


Renderer = Callable[[Any, Dict[str, Any], Theme, bool], List[Block]]

RENDERERS: Mapping[VisualFormatKind, Renderer] = MappingProxyType({
    VisualFormatKind.GRID: render_grid,
    VisualFormatKind.NUMBER_LINE: render_number_line,
    VisualFormatKind.TIMELINE: render_timeline,
    VisualFormatKind.COMPARISON_TABLE: render_comparison_table,
    VisualFormatKind.LABELING_DIAGRAM: render_labeling_diagram,
    VisualFormatKind.RESULTS_TABLE: render_results_table,
    VisualFormatKind.LABEL_MAP: render_label_map,
})


def render_visual_format(doc, visual_format: Union[VisualFormat, Mapping[str, Any], None], theme: Theme,
                         support_mode: bool = False) -> List[Block]:
    """Append the widget for ``visual_format`` to ``doc`` and return the blocks added.

    Unknown or missing types add nothing and return an empty list.
    """
    if visual_format is None:
        return []
    if not isinstance(visual_format, VisualFormat):
        visual_format = VisualFormat.model_validate(dict(visual_format))

    kind = parse_kind(visual_format.type)
    if kind is None:
        logger.debug("Skipping unknown visual format %r", visual_format.type)
        return []

    spacer = doc.add_paragraph()
    spacer.paragraph_format.space_before = Pt(20)
    spacer.paragraph_format.space_after = Pt(10)
    return [spacer] + RENDERERS[kind](doc, visual_format.data, theme, support_mode)
