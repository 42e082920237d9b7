"""
pdf_export.py — Generate the branded SEO fix-guide PDF for one website.

Usage:
    from pdf_export import build_pdf, report_filename
    pdf_bytes = build_pdf("example.com", bundle)
    filename  = report_filename("example.com")   # seo-report-example-com.pdf
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Optional, Sequence

from fpdf import FPDF
from pydantic import BaseModel

from report_data import (
    AiBotSection,
    AiVisibilitySection,
    AnalysisBundle,
    Finding,
    FindingsSection,
    ScoresSection,
    SpeedSection,
    format_number,
    normalize_bundle,
)

PRODUCT_NAME = "SEOzapp"
WORDMARK     = ("SEO", "zapp")

NO_ISSUES_MESSAGE = "No major issues found. Great job!"
NO_DATA_MESSAGE   = "No analysis data was available for this website."

# Creation date written when the caller does not inject one; keeps output reproducible.
DEFAULT_GENERATED_AT = datetime(2000, 1, 1, tzinfo=timezone.utc)

# Core fonts are emitted with WinAnsiEncoding; cp1252 covers the footer bullet.
CORE_FONT_ENCODING = "cp1252"

# ---------------------------------------------------------------------------
# Text sanitiser — core Helvetica is written as cp1252 (WinAnsi); no emoji / other Unicode
# ---------------------------------------------------------------------------
_REPLACEMENTS = {
    "\u2026": "...",   # ellipsis
    "\u2018": "'",     # left single quote
    "\u2019": "'",     # right single quote
    "\u201c": '"',     # left double quote
    "\u201d": '"',     # right double quote
    "\u2013": "-",     # en dash
    "\u2014": "--",    # em dash
    "\u2192": "->",    # arrow
    "\u2713": "v",     # check mark
    "\u00a0": " ",     # nbsp
}


def _s(text) -> str:
    """Return a cp1252-safe, single-line string for fpdf cell() calls."""
    t = str(text)
    for char, repl in _REPLACEMENTS.items():
        t = t.replace(char, repl)
    t = t.replace("\n", " ").replace("\r", " ").replace("\t", " ")
    return t.encode(CORE_FONT_ENCODING, errors="replace").decode(CORE_FONT_ENCODING)


def _ms(text) -> str:
    """cp1252-safe string that keeps newlines, for wrapped table cells."""
    t = str(text)
    for char, repl in _REPLACEMENTS.items():
        t = t.replace(char, repl)
    t = t.replace("\r", "").replace("\t", " ")
    return t.encode(CORE_FONT_ENCODING, errors="replace").decode(CORE_FONT_ENCODING)


# ---------------------------------------------------------------------------
# Colour palette
# ---------------------------------------------------------------------------
ACCENT      = (41,  98, 255)  # wordmark "zapp", title band
DARK        = (30,  30,  30)  # headings
GRAY_TEXT   = (80,  80,  80)  # secondary text
FOOTER_GRAY = (150, 150, 150)
BOX_BG      = (245, 245, 250) # scores block
BOX_LINE    = (200, 200, 200)
STRIPE_BG   = (245, 245, 245) # striped table rows
WHITE       = (255, 255, 255)

SPEED_HEAD  = (46, 204, 113)
ISSUES_HEAD = (231, 76,  60)
AI_HEAD     = (155, 89, 182)
BOTS_HEAD   = (39, 174,  96)


# ---------------------------------------------------------------------------
# Layout configuration (millimetres, A4 portrait)
# ---------------------------------------------------------------------------

class ReportLayout(BaseModel):
    margin: float = 14.0
    footer_reserve: float = 25.0   # kept clear at the bottom of every page
    body_top: float = 30.0         # cursor start on continuation pages
    first_body_top: float = 60.0   # cursor start below the page-1 title band
    table_font_size: float = 8.0
    line_height: float = 4.0
    cell_padding: float = 1.5
    section_gap: float = 12.0


# ---------------------------------------------------------------------------
# Text measuring helpers
# ---------------------------------------------------------------------------

def _wrap(pdf: FPDF, text: str, max_width: float) -> list[str]:
    """Word-wrap with the current font; over-long tokens are split by width."""
    lines: list[str] = []
    for paragraph in text.split("\n"):
        if pdf.get_string_width(paragraph) <= max_width:
            lines.append(paragraph)
            continue
        current = ""
        for word in paragraph.split(" "):
            candidate = f"{current} {word}" if current else word
            if pdf.get_string_width(candidate) <= max_width:
                current = candidate
                continue
            if current:
                lines.append(current)
                current = ""
            if pdf.get_string_width(word) <= max_width:
                current = word
                continue
            # URLs and other unbroken tokens
            remainder = word
            while remainder:
                n = 1
                while n < len(remainder) and pdf.get_string_width(remainder[:n + 1]) <= max_width:
                    n += 1
                lines.append(remainder[:n])
                remainder = remainder[n:]
        if current:
            lines.append(current)
    return lines or [""]


def _truncate(pdf: FPDF, text: str, max_width: float) -> str:
    if pdf.get_string_width(text) <= max_width:
        return text
    while text and pdf.get_string_width(text + "...") > max_width:
        text = text[:-1]
    return text + "..."


# ---------------------------------------------------------------------------
# PDF subclass — branded header / footer
# ---------------------------------------------------------------------------

class FixGuidePDF(FPDF):
    def __init__(self, site_name: str, layout: ReportLayout,
                 generated_at: Optional[datetime] = None):
        super().__init__(orientation="P", unit="mm", format="A4")
        self.site_name = site_name
        self.layout = layout
        self.generated_at = generated_at
        self.core_fonts_encoding = CORE_FONT_ENCODING
        self.set_margins(layout.margin, layout.margin, layout.margin)
        # Page breaks are decided by ReportBuilder, never by fpdf.
        self.set_auto_page_break(auto=False)

    # ── Header / footer ────────────────────────────────────────────────────

    def header(self):
        self._wordmark()
        if self.page_no() == 1:
            self._title_band()
        else:
            self.set_font("Helvetica", "", 7)
            self.set_text_color(*FOOTER_GRAY)
            self.set_xy(self.w - self.r_margin - 70, 4)
            self.cell(70, 4, _truncate(self, _s(self.site_name), 68), align="R")

    def footer(self):
        self.set_y(-14)
        self.set_font("Helvetica", "", 9)
        self.set_text_color(*FOOTER_GRAY)
        self.cell(0, 6, _s(f"Page {self.page_no()} of {{nb}}  \u2022  Powered by {PRODUCT_NAME}"),
                  align="C")

    def _wordmark(self):
        self.set_fill_color(*WHITE)
        self.rect(0, 0, self.w, 18, "F")

        first, second = WORDMARK
        self.set_font("Helvetica", "B", 14)
        w1 = self.get_string_width(first)
        w2 = self.get_string_width(second)
        x = (self.w - w1 - w2) / 2
        self.set_text_color(*DARK)
        self.text(x, 12, first)
        self.set_text_color(*ACCENT)
        self.text(x + w1, 12, second)

        self.set_draw_color(*ACCENT)
        self.set_line_width(0.5)
        self.line(self.l_margin, 17, self.w - self.r_margin, 17)
        self.set_line_width(0.2)

    def _title_band(self):
        self.set_fill_color(*ACCENT)
        self.rect(0, 20, self.w, 30, "F")

        self.set_font("Helvetica", "B", 18)
        self.set_text_color(*WHITE)
        title = _s(f"SEO FIX GUIDE: {self.site_name.upper()}")
        lines = _wrap(self, title, self.w - 40)
        if len(lines) > 2:
            lines = [lines[0], _truncate(self, " ".join(lines[1:]), self.w - 40)]
        y = 29 if len(lines) == 1 else 25
        for line in lines:
            self.set_xy(20, y)
            self.cell(self.w - 40, 8, line, align="C")
            y += 8

        if self.generated_at is not None:
            self.set_font("Helvetica", "", 8)
            self.set_xy(20, 43)
            self.cell(self.w - 40, 5,
                      _s(f"Report generated: {self.generated_at.strftime('%B %d, %Y')}"),
                      align="C")


# ---------------------------------------------------------------------------
# Builder — owns the cursor for a single report
# ---------------------------------------------------------------------------

class ReportBuilder:
    """Vertical cursor and page state for one document. Never shared."""

    def __init__(self, pdf: FixGuidePDF):
        self.pdf = pdf
        self.layout = pdf.layout
        self.y = 0.0
        self.table_headers_drawn = 0

    @property
    def bottom(self) -> float:
        return self.pdf.h - self.layout.footer_reserve

    @property
    def content_width(self) -> float:
        return self.pdf.w - 2 * self.layout.margin

    # ── Pagination ─────────────────────────────────────────────────────────

    def start(self):
        self.pdf.add_page()
        self.y = self.layout.first_body_top

    def new_page(self):
        self.pdf.add_page()
        self.y = self.layout.body_top

    def ensure_space(self, needed: float):
        if self.y + needed > self.bottom:
            self.new_page()

    # ── Text ───────────────────────────────────────────────────────────────

    def heading(self, text: str):
        self.pdf.set_font("Helvetica", "B", 14)
        self.pdf.set_text_color(*DARK)
        self.pdf.set_xy(self.layout.margin, self.y)
        self.pdf.cell(self.content_width, 7, _s(text))
        self.y += 9

    def line(self, text: str, size: float = 10, style: str = "", color=DARK, height: float = 6):
        self.pdf.set_font("Helvetica", style, size)
        self.pdf.set_text_color(*color)
        self.pdf.set_xy(self.layout.margin, self.y)
        self.pdf.cell(self.content_width, height,
                      _truncate(self.pdf, _s(text), self.content_width - 2))
        self.y += height

    # ── Tables ─────────────────────────────────────────────────────────────

    def _column_widths(self, widths: Sequence[Optional[float]]) -> list[float]:
        fixed = sum(w for w in widths if w is not None)
        auto = [w for w in widths if w is None]
        share = (self.content_width - fixed) / len(auto) if auto else 0
        return [w if w is not None else share for w in widths]

    def _cell_lines(self, row: Sequence[str], widths: list[float],
                    bold_columns: Sequence[int], header: bool) -> list[list[str]]:
        pad = self.layout.cell_padding + self.pdf.c_margin
        cells = []
        for i, (value, w) in enumerate(zip(row, widths)):
            style = "B" if header or i in bold_columns else ""
            self.pdf.set_font("Helvetica", style, self.layout.table_font_size)
            cells.append(_wrap(self.pdf, _ms(value), w - 2 * pad))
        return cells

    def _row_height(self, cells: list[list[str]]) -> float:
        tallest = max(len(lines) for lines in cells)
        return tallest * self.layout.line_height + 2 * self.layout.cell_padding

    def _clip_rows(self, cells: list[list[str]], max_lines: int) -> list[list[str]]:
        """A row taller than a page is cut so layout always terminates."""
        clipped = []
        for lines in cells:
            if len(lines) > max_lines:
                lines = lines[:max_lines - 1] + [lines[max_lines - 1].rstrip() + "..."]
            clipped.append(lines)
        return clipped

    def _draw_row(self, cells: list[list[str]], widths: list[float], height: float, *,
                  fill=None, text_color=DARK, border: bool = False,
                  bold_columns: Sequence[int] = (), header: bool = False):
        pdf = self.pdf
        pad = self.layout.cell_padding
        x = self.layout.margin
        pdf.set_draw_color(*BOX_LINE)
        for i, (lines, w) in enumerate(zip(cells, widths)):
            style = ("D" if border else "") + ("F" if fill else "")
            if fill:
                pdf.set_fill_color(*fill)
            if style:
                pdf.rect(x, self.y, w, height, style)
            pdf.set_font("Helvetica", "B" if header or i in bold_columns else "",
                         self.layout.table_font_size)
            pdf.set_text_color(*text_color)
            for j, text in enumerate(lines):
                pdf.set_xy(x + pad, self.y + pad + j * self.layout.line_height)
                pdf.cell(w - 2 * pad, self.layout.line_height, text)
            x += w
        self.y += height

    def table(self, head: Sequence[str], rows: Sequence[Sequence[str]],
              widths: Sequence[Optional[float]], head_color, *,
              theme: str = "grid", bold_columns: Sequence[int] = ()):
        """
        Draw a table starting at the cursor. The header row is repeated on
        every continuation page and never left alone at a page bottom.
        """
        col_w = self._column_widths(widths)
        grid = theme == "grid"

        head_cells = self._cell_lines(head, col_w, bold_columns, header=True)
        head_h = self._row_height(head_cells)
        room = self.bottom - self.layout.body_top - head_h - 2 * self.layout.cell_padding
        max_lines = max(1, math.floor(room / self.layout.line_height))

        body = [self._clip_rows(self._cell_lines(r, col_w, bold_columns, header=False), max_lines)
                for r in rows]
        heights = [self._row_height(cells) for cells in body]

        def draw_head():
            self._draw_row(head_cells, col_w, head_h, fill=head_color, text_color=WHITE,
                           border=grid, header=True)
            self.table_headers_drawn += 1

        self.ensure_space(head_h + (heights[0] if heights else 0))
        draw_head()
        for i, (cells, h) in enumerate(zip(body, heights)):
            if self.y + h > self.bottom:
                self.new_page()
                draw_head()
            fill = STRIPE_BG if not grid and i % 2 == 0 else None
            self._draw_row(cells, col_w, h, fill=fill, border=grid, bold_columns=bold_columns)
        self.y += self.layout.section_gap


# ---------------------------------------------------------------------------
# Section renderers
# ---------------------------------------------------------------------------

def _scores(rb: ReportBuilder, scores: ScoresSection):
    pdf = rb.pdf
    margin = rb.layout.margin
    overall = format_number(scores.overall_score) if scores.overall_score is not None else "N/A"
    buckets = [f"{name.replace('_', ' ')}: {format_number(v)}" for name, v in scores.buckets.items()]

    per_row = 2
    # The box never grows past one page body; extra buckets collapse into "+N more".
    max_rows = max(1, math.floor((rb.bottom - rb.layout.body_top - 15 - 12) / 5))
    if len(buckets) > max_rows * per_row:
        keep = max_rows * per_row - 1
        buckets = buckets[:keep] + [f"+{len(buckets) - keep} more"]
    bucket_rows = math.ceil(len(buckets) / per_row)
    box_h = max(35.0, 8 + bucket_rows * 5 + 4)
    rb.ensure_space(box_h + 15)

    y = rb.y
    pdf.set_draw_color(*BOX_LINE)
    pdf.set_fill_color(*BOX_BG)
    pdf.rect(margin, y, rb.content_width, box_h, "DF")

    pdf.set_font("Helvetica", "B", 14)
    pdf.set_text_color(*DARK)
    pdf.set_xy(margin + 6, y + 6)
    pdf.cell(75, 7, _s(f"Overall Score: {overall}/100"))

    if scores.grade:
        pdf.set_font("Helvetica", "B", 12)
        pdf.set_xy(margin + 6, y + 15)
        pdf.cell(75, 6, _s(f"Grade: {scores.grade}"))

    if scores.images_missing_alt is not None:
        pdf.set_font("Helvetica", "", 9)
        pdf.set_text_color(*GRAY_TEXT)
        pdf.set_xy(margin + 6, y + 24)
        pdf.cell(75, 5, _s(f"Images missing alt text: {format_number(scores.images_missing_alt)}"))

    pdf.set_font("Helvetica", "", 9)
    pdf.set_text_color(*GRAY_TEXT)
    for i, label in enumerate(buckets):
        pdf.set_xy(100 + (i % per_row) * 40, y + 7 + (i // per_row) * 5)
        pdf.cell(40, 5, _truncate(pdf, _s(label), 38))

    rb.y += box_h + 10


def _speed(rb: ReportBuilder, speed: SpeedSection):
    rows = []
    if speed.has_grade:
        score = format_number(speed.score) if speed.score is not None else "-"
        rows.append(["Performance Grade", speed.grade or "-", score])
    if speed.load_time_ms is not None:
        rows.append(["Load Time", f"{speed.load_time_ms / 1000:.2f}s", "-"])
    if not rows:
        return

    rb.ensure_space(50)
    rb.heading("Performance & Speed")
    rb.table(["Metric", "Value", "Score/Grade"], rows, [None, None, None], SPEED_HEAD)


def _severity_label(f: Finding) -> str:
    return (f.severity or "").upper() or "INFO"


def _category_label(f: Finding) -> str:
    return (f.category or "").replace("_", " ") or "General"


def _issues(rb: ReportBuilder, section: FindingsSection):
    rb.ensure_space(30)
    rb.heading("Issues & Recommendations")

    rows = [[_severity_label(f), _category_label(f), f.issue or "", f.fix or ""]
            for f in section.findings]
    if rows:
        rb.table(["Severity", "Category", "Issue", "Recommendation"], rows,
                 [22, 28, 55, None], ISSUES_HEAD, theme="striped", bold_columns=(0,))
    else:
        rb.line(NO_ISSUES_MESSAGE, size=11, style="I", color=GRAY_TEXT)
        rb.y += 9


def _ai_visibility(rb: ReportBuilder, vis: AiVisibilitySection):
    rb.new_page()
    rb.heading("AI Search Visibility")
    rb.y += 1

    if vis.score is not None:
        rb.line(f"AI Visibility Score: {format_number(vis.score)}/100", size=12)
        rb.y += 6

    if vis.suggestions:
        rows = [[s.priority or "", s.category or "", s.message or ""] for s in vis.suggestions]
        rb.table(["Priority", "Category", "Suggestion"], rows, [25, 35, None], AI_HEAD)


def _ai_bots(rb: ReportBuilder, bots: AiBotSection):
    rb.y += 3
    rb.ensure_space(40)
    rb.heading("AI Bot Access")
    rb.y += 1

    if bots.ai_bots_allowed is None:
        allowed = "Unknown"
    else:
        allowed = "Yes" if bots.ai_bots_allowed else "No"
    rb.line(f"robots.txt found: {'Yes' if bots.robots_found else 'No'}", height=7)
    rb.line(f"AI bots allowed: {allowed}", height=7)
    rb.y += 3

    if bots.bots:
        rows = [[name, "Allowed" if info.allowed else "Blocked", info.rule or "-"]
                for name, info in bots.bots.items()]
        rb.table(["Bot", "Status", "Rule"], rows, [50, 30, None], BOTS_HEAD)


def _empty_state(rb: ReportBuilder):
    rb.line(NO_DATA_MESSAGE, size=11, style="I", color=GRAY_TEXT)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def report_filename(site_name: str) -> str:
    """seo-report-<site>.pdf with every non-alphanumeric character replaced by '-'."""
    return f"seo-report-{re.sub(r'[^A-Za-z0-9]', '-', site_name)}.pdf"


def build_pdf(site_name: str, bundle, *, generated_at: Optional[datetime] = None,
              layout: Optional[ReportLayout] = None) -> bytes:
    """
    Build the fix-guide PDF for `site_name` from whatever parts of `bundle`
    are available. Returns raw PDF bytes ready to send as an HTTP response.

    `bundle` is an AnalysisBundle or a mapping with its fields. Missing or
    malformed parts only drop their own section; an empty site name raises
    ValueError. `generated_at` is the only clock the output depends on.
    """
    if not isinstance(site_name, str) or not site_name.strip():
        raise ValueError("site_name must be a non-empty string")
    if not isinstance(bundle, AnalysisBundle):
        bundle = AnalysisBundle.model_validate(bundle or {})
    data = normalize_bundle(bundle)

    if generated_at is not None and generated_at.tzinfo is None:
        generated_at = generated_at.replace(tzinfo=timezone.utc)

    pdf = FixGuidePDF(site_name.strip(), layout or ReportLayout(), generated_at)
    pdf.set_title(_s(f"SEO Fix Guide: {site_name.strip()}"))
    pdf.set_author(PRODUCT_NAME)
    pdf.set_creation_date(generated_at or DEFAULT_GENERATED_AT)
    pdf.alias_nb_pages()

    rb = ReportBuilder(pdf)
    rb.start()
    if data.scores is not None:
        _scores(rb, data.scores)
    if data.speed is not None:
        _speed(rb, data.speed)
    if data.findings is not None:
        _issues(rb, data.findings)
    if data.ai_visibility is not None:
        _ai_visibility(rb, data.ai_visibility)
    if data.ai_bots is not None:
        _ai_bots(rb, data.ai_bots)
    if data.is_empty():
        _empty_state(rb)

    return bytes(pdf.output())
