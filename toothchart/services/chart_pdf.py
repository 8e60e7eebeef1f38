from __future__ import annotations

import re
from datetime import date, datetime, timezone
from io import BytesIO

from reportlab.graphics import renderPDF
from reportlab.graphics.shapes import Drawing, Line, Rect, String
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from toothchart.schemas.dental_chart import ChartDocument, ToothRecord
from toothchart.services.condition_catalog import ABSENT_CONDITIONS, CONDITION_LOOKUP, CONDITIONS
from toothchart.services.tooth_numbering import ordered_labels, split_arches

CELL = 12
TILE = 3 * CELL
COLUMN = TILE + 10
ROW = 84
MARGIN = 12
LEGEND_HEIGHT = 28

# (column, row) inside the 3x3 tile, row 0 at the bottom
SURFACE_CELLS = {
    "B": (1, 2),
    "M": (0, 1),
    "O": (1, 1),
    "D": (2, 1),
    "L": (1, 0),
}

UNKNOWN_COLOR = colors.lightgrey


class ChartExportError(RuntimeError):
    pass


def _condition_color(condition_id: str | None):
    condition = CONDITION_LOOKUP.get(condition_id or "")
    if condition is None:
        return UNKNOWN_COLOR
    return colors.HexColor(condition.color)


def _condition_label(condition_id: str) -> str:
    condition = CONDITION_LOOKUP.get(condition_id)
    return condition.label if condition else condition_id


def _draw_tooth(drawing: Drawing, x: float, y: float, label: str, record: ToothRecord | None) -> None:
    absent = bool(record and record.whole in ABSENT_CONDITIONS)
    drawing.add(
        String(x + TILE / 2, y + TILE + 4, label, textAnchor="middle", fontName="Helvetica-Bold", fontSize=8)
    )
    for surface, (col, row) in SURFACE_CELLS.items():
        mark = record.surfaces.get(surface) if record else None
        fill = _condition_color(mark.condition_id) if mark else colors.white
        drawing.add(
            Rect(
                x + col * CELL,
                y + row * CELL,
                CELL,
                CELL,
                fillColor=fill,
                strokeColor=colors.grey,
                strokeWidth=0.5,
                fillOpacity=0.4 if absent else 1,
            )
        )
    if record and record.whole:
        drawing.add(
            String(
                x + TILE / 2,
                y - 10,
                _condition_label(record.whole)[:12],
                textAnchor="middle",
                fontName="Helvetica",
                fontSize=6,
                fillColor=_condition_color(record.whole),
            )
        )
    if absent:
        cross = _condition_color(record.whole)
        drawing.add(Line(x, y, x + TILE, y + TILE, strokeColor=cross, strokeWidth=1.5))
        drawing.add(Line(x, y + TILE, x + TILE, y, strokeColor=cross, strokeWidth=1.5))


def _draw_arch(drawing: Drawing, title: str, labels: list[str], chart: ChartDocument, top: float) -> None:
    drawing.add(String(MARGIN, top - 10, title, fontName="Helvetica-Bold", fontSize=9))
    tile_y = top - 22 - TILE
    for index, label in enumerate(labels):
        _draw_tooth(drawing, MARGIN + index * COLUMN, tile_y, label, chart.teeth.get(label))


def _draw_legend(drawing: Drawing) -> None:
    x = MARGIN
    y = MARGIN
    for condition in CONDITIONS:
        drawing.add(
            Rect(x, y, 8, 8, fillColor=colors.HexColor(condition.color), strokeColor=colors.grey, strokeWidth=0.5)
        )
        drawing.add(String(x + 11, y + 1, condition.label, fontName="Helvetica", fontSize=7))
        x += 16 + 4.2 * len(condition.label)


def build_chart_drawing(chart: ChartDocument) -> Drawing:
    labels = ordered_labels(chart.numbering, chart.dentition)
    upper, lower = split_arches(labels, chart.dentition)
    columns = max(len(upper), len(lower))
    width = 2 * MARGIN + columns * COLUMN
    height = 2 * MARGIN + LEGEND_HEIGHT + 2 * ROW
    drawing = Drawing(width, height)
    drawing.add(Rect(0, 0, width, height, fillColor=colors.white, strokeColor=colors.lightgrey))
    _draw_arch(drawing, "Upper arch", upper, chart, height - MARGIN)
    _draw_arch(drawing, "Lower arch", lower, chart, height - MARGIN - ROW)
    _draw_legend(drawing)
    return drawing


def export_filename(patient_id: str, today: date | None = None) -> str:
    day = today or datetime.now(timezone.utc).date()
    safe_id = re.sub(r"[^A-Za-z0-9_-]+", "-", patient_id).strip("-") or "patient"
    return f"dental-chart-{safe_id}-{day.isoformat()}.pdf"


def build_chart_pdf(
    chart: ChartDocument,
    *,
    generated_at: datetime | None = None,
    clinic_name: str | None = None,
) -> bytes:
    """Render ``chart`` onto a single landscape A4 page, scaled and centred.

    The chart is only read; a failure anywhere raises ``ChartExportError``.
    """
    generated_at = generated_at or datetime.now(timezone.utc)
    try:
        drawing = build_chart_drawing(chart)
        buffer = BytesIO()
        page_width, page_height = landscape(A4)
        pdf = canvas.Canvas(buffer, pagesize=(page_width, page_height))
        pdf.setTitle(f"Dental chart {chart.patient_id}")

        stamp = generated_at.strftime("%Y-%m-%d %H:%M UTC")
        pdf.setFont("Helvetica-Bold", 13)
        pdf.drawString(15 * mm, page_height - 15 * mm, f"Dental Chart - Patient: {chart.patient_id} - {stamp}")
        pdf.setFont("Helvetica", 9)
        subtitle = f"{chart.numbering.upper()} numbering, {chart.dentition} dentition"
        if clinic_name:
            subtitle = f"{clinic_name} - {subtitle}"
        pdf.drawString(15 * mm, page_height - 21 * mm, subtitle)
        pdf.drawRightString(
            page_width - 15 * mm,
            page_height - 21 * mm,
            f"Chart updated {chart.updated_at.strftime('%Y-%m-%d %H:%M UTC')}",
        )

        margin = 15 * mm
        header = 20 * mm
        avail_width = page_width - 2 * margin
        avail_height = page_height - 2 * margin - header
        ratio = min(avail_width / drawing.width, avail_height / drawing.height)
        x = (page_width - drawing.width * ratio) / 2
        y = margin + (avail_height - drawing.height * ratio) / 2

        pdf.saveState()
        pdf.translate(x, y)
        pdf.scale(ratio, ratio)
        renderPDF.draw(drawing, pdf, 0, 0)
        pdf.restoreState()

        pdf.showPage()
        pdf.save()
    except Exception as exc:
        raise ChartExportError(f"Chart export failed for patient {chart.patient_id}: {exc}") from exc
    return buffer.getvalue()
