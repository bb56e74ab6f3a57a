"""Generate printable dental chart summaries."""
from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from .config import ClinicInfo
from .models import Doctor, Patient, ToothRecord, Visit, find_template
from .phones import format_phone_for_display


class PatientChartPDFGenerator:
    """Lay out a patient's tooth chart and visits into a PDF document."""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def generate(
        self,
        clinic: ClinicInfo,
        patient: Patient,
        doctor: Optional[Doctor] = None,
        printed_on: Optional[datetime] = None,
    ) -> Path:
        printed_on = printed_on or datetime.now()
        output_path = self.output_dir / self._build_filename(patient, printed_on)

        pdf = canvas.Canvas(str(output_path), pagesize=A4)
        width, height = A4
        margin = 18 * mm
        content_top = height - margin

        header_bottom = self._draw_header(pdf, clinic, margin, content_top)
        current_y = header_bottom - 14
        self._draw_title(pdf, "Dental Chart", width / 2, current_y)
        current_y -= 18
        pdf.line(margin, current_y, width - margin, current_y)
        current_y -= 20

        current_y = self._draw_patient_block(pdf, patient, doctor, printed_on, margin, width - margin, current_y)
        current_y -= 22

        chart = sorted(patient.dental_chart, key=lambda record: record.tooth_number)
        current_y = self._draw_chart_table(pdf, chart, margin, width - margin, current_y)
        current_y -= 24

        self._draw_visits(pdf, patient.visits, margin, width - margin, current_y)

        pdf.showPage()
        pdf.save()
        return output_path

    # ------------------------------------------------------------------

    def _build_filename(self, patient: Patient, printed_on: datetime) -> str:
        patient_slug = self._slugify(f"{patient.last_name} {patient.first_name}") or "patient"
        return f"chart_{patient_slug}_{printed_on.strftime('%Y%m%d')}.pdf"

    @staticmethod
    def _slugify(text: str) -> str:
        cleaned = re.sub(r"[^A-Za-z0-9]+", "_", text.strip())
        return cleaned.strip("_")[:80]

    def _draw_header(self, pdf: canvas.Canvas, clinic: ClinicInfo, left: float, top: float) -> float:
        text = pdf.beginText()
        text.setTextOrigin(left, top - 6)
        text.setFont("Helvetica-Bold", 14)
        text.textLine(clinic.name.strip() or "Clinic")
        text.setFont("Helvetica", 10)
        max_text_width = max(10.0, pdf._pagesize[0] - 2 * left)
        for raw_line in self._split_lines(clinic.address):
            for wrapped_line in self._wrap_text(raw_line, max_text_width, "Helvetica", 10):
                text.textLine(wrapped_line)
        if clinic.phone:
            text.textLine(f"Phone: {clinic.phone}")
        if clinic.email:
            text.textLine(f"Email: {clinic.email}")
        pdf.drawText(text)
        return text.getY()

    def _draw_title(self, pdf: canvas.Canvas, title: str, x: float, y: float) -> None:
        pdf.setFont("Helvetica-Bold", 18)
        pdf.drawCentredString(x, y, title)

    def _draw_patient_block(
        self,
        pdf: canvas.Canvas,
        patient: Patient,
        doctor: Optional[Doctor],
        printed_on: datetime,
        left: float,
        right: float,
        top: float,
    ) -> float:
        column_gap = 14
        column_width = (right - left - column_gap) / 2

        patient_text = pdf.beginText()
        patient_text.setTextOrigin(left, top)
        patient_text.setFont("Helvetica-Bold", 11)
        patient_text.textLine("Patient")
        patient_text.setFont("Helvetica", 10)
        names = [patient.last_name, patient.first_name, patient.middle_name or ""]
        patient_text.textLine(" ".join(part for part in names if part))
        if patient.phone:
            patient_text.textLine(f"Phone: {format_phone_for_display(patient.phone)}")
        if patient.date_of_birth:
            patient_text.textLine(f"Date of birth: {patient.date_of_birth}")
        pdf.drawText(patient_text)

        meta_text = pdf.beginText()
        meta_text.setTextOrigin(left + column_width + column_gap, top)
        meta_text.setFont("Helvetica", 10)
        if doctor is not None:
            meta_text.textLine(f"Doctor: {doctor.name}")
            if doctor.specialty:
                meta_text.textLine(f"Specialty: {doctor.specialty}")
        meta_text.textLine(f"Printed: {printed_on.strftime('%Y-%m-%d %H:%M')}")
        meta_text.textLine(f"Chart entries: {len(patient.dental_chart)}")
        pdf.drawText(meta_text)

        return min(patient_text.getY(), meta_text.getY())

    def _draw_chart_table(
        self,
        pdf: canvas.Canvas,
        chart: Sequence[ToothRecord],
        left: float,
        right: float,
        top: float,
    ) -> float:
        width = right - left
        column_ratios = [0.10, 0.18, 0.36, 0.28, 0.08]
        col_widths = [width * ratio for ratio in column_ratios]

        header_height = 18
        pdf.setFillColorRGB(0.9, 0.9, 0.9)
        pdf.rect(left, top - header_height, width, header_height, fill=1, stroke=0)
        pdf.setFillColorRGB(0, 0, 0)
        pdf.rect(left, top - header_height, width, header_height, fill=0, stroke=1)

        pdf.setFont("Helvetica-Bold", 10)
        headers = ["Tooth", "Condition", "Description", "Notes", "Files"]
        for idx, header in enumerate(headers):
            column_left = left + sum(col_widths[:idx])
            pdf.drawString(column_left + 6, top - header_height + 5, header)

        current_y = top - header_height
        pdf.setFont("Helvetica", 9)
        if not chart:
            current_y -= 20
            pdf.rect(left, current_y, width, 20, fill=0, stroke=1)
            pdf.drawString(left + 6, current_y + 7, "No chart entries recorded")
            return current_y

        for record in chart:
            template = find_template(record.template_id)
            cells = [
                [str(record.tooth_number)],
                self._wrap_text(template.label if template else record.template_id, col_widths[1] - 10, "Helvetica", 9),
                self._wrap_text(record.description, col_widths[2] - 10, "Helvetica", 9),
                self._wrap_text(record.notes, col_widths[3] - 10, "Helvetica", 9),
                [str(len(record.files))],
            ]
            line_count = max(len(cell) for cell in cells)
            row_height = 8 + line_count * 11
            if current_y - row_height < 18 * mm:
                pdf.showPage()
                pdf.setFont("Helvetica", 9)
                current_y = A4[1] - 18 * mm
            current_y -= row_height
            pdf.rect(left, current_y, width, row_height, fill=0, stroke=1)

            for idx, lines in enumerate(cells):
                column_left = left + sum(col_widths[:idx])
                text_y = current_y + row_height - 12
                for line in lines:
                    pdf.drawString(column_left + 6, text_y, line)
                    text_y -= 11

        return current_y

    def _draw_visits(
        self,
        pdf: canvas.Canvas,
        visits: Sequence[Visit],
        left: float,
        right: float,
        top: float,
    ) -> None:
        line_y = top
        if line_y < 30 * mm:
            pdf.showPage()
            line_y = A4[1] - 18 * mm
        pdf.setFont("Helvetica-Bold", 11)
        pdf.drawString(left, line_y, "Visits")
        line_y -= 16
        pdf.setFont("Helvetica", 10)
        if not visits:
            pdf.drawString(left, line_y, "No visits recorded")
            return
        for visit in sorted(visits, key=lambda item: item.date, reverse=True):
            if line_y < 18 * mm:
                pdf.showPage()
                pdf.setFont("Helvetica", 10)
                line_y = A4[1] - 18 * mm
            label = "Planned" if visit.type == "future" else "Completed"
            pdf.drawString(left, line_y, f"{visit.date}  {label}")
            notes = self._wrap_text(visit.notes, (right - left) * 0.6, "Helvetica", 10)[0]
            pdf.drawRightString(right, line_y, notes)
            line_y -= 14

    # ------------------------------------------------------------------

    def _split_lines(self, text: str) -> Iterable[str]:
        if not text:
            return []
        lines = []
        for segment in text.replace('\r', '').split('\n'):
            cleaned = segment.strip()
            if cleaned:
                lines.append(cleaned)
        return lines

    def _wrap_text(self, text: str, max_width: float, font: str, size: int) -> List[str]:
        words = (text or "").split()
        if not words:
            return [""]
        lines: List[str] = []
        current = words[0]
        for word in words[1:]:
            proposal = f"{current} {word}"
            if stringWidth(proposal, font, size) <= max_width:
                current = proposal
            else:
                lines.append(current)
                current = word
        lines.append(current)
        return lines
