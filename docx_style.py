"""python-docx helpers for the few OOXML features the high-level API lacks:
paragraph borders, cell/paragraph shading, table borders and page fields.
"""
from typing import Iterable, Optional

from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Pt, RGBColor
from docx.text.paragraph import Paragraph

# w:pPr children that must follow w:shd (schema order).
_PPR_AFTER_SHD = (
    "w:tabs", "w:suppressAutoHyphens", "w:kinsoku", "w:wordWrap", "w:overflowPunct",
    "w:topLinePunct", "w:autoSpaceDE", "w:autoSpaceDN", "w:bidi", "w:adjustRightInd",
    "w:snapToGrid", "w:spacing", "w:ind", "w:contextualSpacing", "w:mirrorIndents",
    "w:suppressOverlap", "w:jc", "w:textDirection", "w:textAlignment", "w:textboxTightWrap",
    "w:outlineLvl", "w:divId", "w:cnfStyle", "w:rPr", "w:sectPr", "w:pPrChange",
)
_PPR_AFTER_BDR = ("w:shd",) + _PPR_AFTER_SHD
_TCPR_AFTER_SHD = (
    "w:noWrap", "w:tcMar", "w:textDirection", "w:tcFitText", "w:vAlign", "w:hideMark",
    "w:headers", "w:cellIns", "w:cellDel", "w:cellMerge", "w:tcPrChange",
)
_TBLPR_AFTER_BORDERS = (
    "w:shd", "w:tblLayout", "w:tblCellMar", "w:tblLook", "w:tblCaption", "w:tblDescription",
    "w:tblPrChange",
)

ALL_SIDES = ("top", "left", "bottom", "right")


def rgb(hex_color: str) -> RGBColor:
    return RGBColor.from_string(hex_color.lstrip("#").upper())


def _shd(fill: str):
    shd = OxmlElement("w:shd")
    shd.set(qn("w:val"), "clear")
    shd.set(qn("w:color"), "auto")
    shd.set(qn("w:fill"), fill.lstrip("#").upper())
    return shd


def _replace(parent, tag: str, element, successors):
    existing = parent.find(qn(tag))
    if existing is not None:
        parent.remove(existing)
    parent.insert_element_before(element, *successors)


def add_run(paragraph: Paragraph, text: str, size: Optional[float] = None, bold: bool = False,
            italic: bool = False, color: Optional[str] = None):
    run = paragraph.add_run(text)
    if size:
        run.font.size = Pt(size)
    if bold:
        run.font.bold = True
    if italic:
        run.font.italic = True
    if color:
        run.font.color.rgb = rgb(color)
    return run


def shade_paragraph(paragraph: Paragraph, fill: str) -> None:
    p_pr = paragraph._p.get_or_add_pPr()
    _replace(p_pr, "w:shd", _shd(fill), _PPR_AFTER_SHD)


def border_paragraph(paragraph: Paragraph, sides: Iterable[str] = ALL_SIDES, style: str = "single",
                     size: int = 4, color: str = "auto") -> None:
    """Draw borders on the given sides of a paragraph (size in eighths of a point)."""
    p_pr = paragraph._p.get_or_add_pPr()
    p_bdr = OxmlElement("w:pBdr")
    for side in ALL_SIDES:
        if side not in sides:
            continue
        edge = OxmlElement(f"w:{side}")
        edge.set(qn("w:val"), style)
        edge.set(qn("w:sz"), str(size))
        edge.set(qn("w:space"), "4")
        edge.set(qn("w:color"), color.lstrip("#").upper() if color != "auto" else color)
        p_bdr.append(edge)
    _replace(p_pr, "w:pBdr", p_bdr, _PPR_AFTER_BDR)


def shade_cell(cell, fill: str) -> None:
    tc_pr = cell._tc.get_or_add_tcPr()
    _replace(tc_pr, "w:shd", _shd(fill), _TCPR_AFTER_SHD)


def set_cell_text(cell, text: str, bold: bool = False, center: bool = False, size: Optional[float] = None,
                  fill: Optional[str] = None) -> Paragraph:
    paragraph = cell.paragraphs[0]
    if text:
        add_run(paragraph, text, size=size, bold=bold)
    if center:
        paragraph.alignment = WD_ALIGN_PARAGRAPH.CENTER
    if fill:
        shade_cell(cell, fill)
    return paragraph


def border_table(table, style: str = "single", size: int = 4, color: str = "auto",
                 bottom: Optional[tuple] = None, inside: bool = True) -> None:
    """Replace a table's borders; ``bottom`` may override (style, size, color) for the bottom edge."""
    tbl_pr = table._tbl.tblPr
    borders = OxmlElement("w:tblBorders")
    edges = ALL_SIDES + (("insideH", "insideV") if inside else ())
    for side in edges:
        edge = OxmlElement(f"w:{side}")
        edge_style, edge_size, edge_color = (bottom if side == "bottom" and bottom else (style, size, color))
        edge.set(qn("w:val"), edge_style)
        edge.set(qn("w:sz"), str(edge_size))
        edge.set(qn("w:space"), "0")
        edge.set(qn("w:color"), edge_color.lstrip("#").upper() if edge_color != "auto" else edge_color)
        borders.append(edge)
    _replace(tbl_pr, "w:tblBorders", borders, _TBLPR_AFTER_BORDERS)


def add_page_number_field(paragraph: Paragraph, size: Optional[float] = None, color: Optional[str] = None) -> None:
    run = add_run(paragraph, "", size=size, color=color)
    begin = OxmlElement("w:fldChar")
    begin.set(qn("w:fldCharType"), "begin")
    instr = OxmlElement("w:instrText")
    instr.set(qn("xml:space"), "preserve")
    instr.text = "PAGE"
    end = OxmlElement("w:fldChar")
    end.set(qn("w:fldCharType"), "end")
    run._r.append(begin)
    run._r.append(instr)
    run._r.append(end)
