# api/evaluation_pdf.py - Evaluation, multi-evaluatee and ranking reports (reportlab)

from io import BytesIO
from xml.sax.saxutils import escape
import logging

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm
from reportlab.pdfgen import canvas
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer, PageBreak

from .evaluation_state import STAGE_LABELS, STAGE_ORDER
from .evaluation_stores import evaluatee_department_name, evaluatee_display_name

logger = logging.getLogger(__name__)

HEADER_BLUE = colors.HexColor('#3b82f6')
SUMMARY_GREEN = colors.HexColor('#22c55e')
GRID_GREY = colors.HexColor('#d1d5db')


class NumberedCanvas(canvas.Canvas):
    """Canvas that stamps 'Page N of M' once the page count is known"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_page_states = []

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        page_count = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_page_number(page_count)
            super().showPage()
        super().save()

    def _draw_page_number(self, page_count):
        self.setFont('Helvetica', 9)
        self.setFillColor(colors.HexColor('#6b7280'))
        self.drawRightString(A4[0] - 2 * cm, 1.2 * cm, f"Page {self._pageNumber} of {page_count}")


def _format_datetime(value):
    if not value:
        return '-'
    return value.strftime('%Y-%m-%d %H:%M')


def build_report_data(evaluatee, period, evaluations):
    """
    Flatten one evaluatee's evaluations of a period:
    {evaluatee, department, period, evaluations: [{stage, status, total_score, submitted_at, items}]}
    """
    ordered = sorted(
        evaluations,
        key=lambda e: STAGE_ORDER.index(e.stage) if e.stage in STAGE_ORDER else len(STAGE_ORDER),
    )

    rows = []
    for evaluation in ordered:
        scores = {score.item_id: score for score in evaluation.scores.select_related('item').all()}
        items = []
        if period.template_id:
            for item in period.template.items.all().order_by('order_index', 'id'):
                score = scores.get(item.id)
                items.append({
                    'name': item.name,
                    'description': item.description,
                    'weight': item.weight,
                    'grade': score.grade if score else '',
                    'score': score.score if score else 0,
                    'comment': score.comment if score else '',
                })
        rows.append({
            'stage': evaluation.stage,
            'stage_label': STAGE_LABELS.get(evaluation.stage, evaluation.stage),
            'status': evaluation.get_status_display(),
            'total_score': float(sum(s.score for s in scores.values())),
            'submitted_at': _format_datetime(evaluation.submitted_at),
            'overall_comment': evaluation.overall_comment,
            'overall_grade': evaluation.overall_grade,
            'final_decision': evaluation.final_decision,
            'items': items,
        })

    return {
        'evaluatee': evaluatee_display_name(evaluatee),
        'department': evaluatee_department_name(evaluatee),
        'period': period.name,
        'evaluations': rows,
    }


def _styles():
    styles = getSampleStyleSheet()
    return {
        'title': ParagraphStyle(
            'ReportTitle',
            parent=styles['Heading1'],
            fontSize=18,
            textColor=colors.HexColor('#1e3a8a'),
            spaceAfter=20,
            alignment=TA_CENTER,
            fontName='Helvetica-Bold'
        ),
        'stage': ParagraphStyle(
            'StageHeading',
            parent=styles['Heading2'],
            fontSize=13,
            textColor=colors.white,
            backColor=HEADER_BLUE,
            borderPadding=5,
            spaceBefore=14,
            spaceAfter=10,
            fontName='Helvetica-Bold'
        ),
        'heading': ParagraphStyle(
            'SectionHeading',
            parent=styles['Heading2'],
            fontSize=14,
            textColor=colors.HexColor('#1e40af'),
            spaceBefore=16,
            spaceAfter=8,
            fontName='Helvetica-Bold'
        ),
        'body': ParagraphStyle('Body', parent=styles['Normal'], fontSize=10, leading=14, spaceAfter=4),
        'cell': ParagraphStyle('Cell', parent=styles['Normal'], fontSize=9, leading=11),
    }


def _grid_table(data, col_widths, header_color=HEADER_BLUE, striped=False):
    table = Table(data, colWidths=col_widths, repeatRows=1)
    commands = [
        ('BACKGROUND', (0, 0), (-1, 0), header_color),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, 0), 10),
        ('FONTNAME', (0, 1), (-1, -1), 'Helvetica'),
        ('FONTSIZE', (0, 1), (-1, -1), 9),
        ('GRID', (0, 0), (-1, -1), 0.5, GRID_GREY),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LEFTPADDING', (0, 0), (-1, -1), 6),
        ('RIGHTPADDING', (0, 0), (-1, -1), 6),
        ('TOPPADDING', (0, 0), (-1, -1), 5),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 5),
    ]
    if striped:
        commands.append(('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#f9fafb')]))
    table.setStyle(TableStyle(commands))
    return table


def _document(buffer, title):
    return SimpleDocTemplate(
        buffer,
        pagesize=A4,
        topMargin=2*cm,
        bottomMargin=2*cm,
        leftMargin=2*cm,
        rightMargin=2*cm,
        title=title,
    )


def _build(story, title):
    buffer = BytesIO()
    doc = _document(buffer, title)
    doc.build(story, canvasmaker=NumberedCanvas)
    pdf = buffer.getvalue()
    buffer.close()
    return pdf


def _evaluation_story(data, styles):
    story = []
    info = Table([
        ['Evaluatee:', data['evaluatee']],
        ['Department:', data['department']],
        ['Period:', data['period']],
    ], colWidths=[4*cm, 13*cm])
    info.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (0, -1), colors.HexColor('#f3f4f6')),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('GRID', (0, 0), (-1, -1), 0.5, GRID_GREY),
        ('LEFTPADDING', (0, 0), (-1, -1), 8),
        ('TOPPADDING', (0, 0), (-1, -1), 5),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 5),
    ]))
    story.append(info)

    for evaluation in data['evaluations']:
        story.append(Paragraph(
            f"{evaluation['stage_label']} - Score: {evaluation['total_score']:.1f}", styles['stage']
        ))
        story.append(Paragraph(
            f"Status: {evaluation['status']} | Submitted: {evaluation['submitted_at']}", styles['body']
        ))

        if evaluation['items']:
            rows = [['Item', 'Weight', 'Grade', 'Score', 'Comment']]
            for item in evaluation['items']:
                rows.append([
                    Paragraph(escape(item['name']), styles['cell']),
                    str(item['weight']),
                    item['grade'] or '-',
                    f"{item['score']:.1f}",
                    Paragraph(escape(item['comment'] or '-'), styles['cell']),
                ])
            story.append(_grid_table(rows, [4.5*cm, 1.7*cm, 1.7*cm, 1.7*cm, 7.4*cm]))

        if evaluation['stage'] == 'final':
            if evaluation['overall_grade'] or evaluation['final_decision']:
                story.append(Spacer(1, 0.2*cm))
                story.append(Paragraph(
                    f"Overall grade: {evaluation['overall_grade'] or '-'} | "
                    f"Final decision: {evaluation['final_decision'] or '-'}",
                    styles['body']
                ))
            if evaluation['overall_comment']:
                story.append(Paragraph(f"Overall comment: {escape(evaluation['overall_comment'])}", styles['body']))

    story.append(Paragraph('Summary', styles['heading']))
    summary = [['Stage', 'Total Score', 'Status', 'Submitted At']]
    for evaluation in data['evaluations']:
        summary.append([
            evaluation['stage_label'],
            f"{evaluation['total_score']:.1f}",
            evaluation['status'],
            evaluation['submitted_at'],
        ])
    story.append(_grid_table(summary, [5*cm, 3*cm, 3.5*cm, 5.5*cm], header_color=SUMMARY_GREEN, striped=True))
    return story


def render_evaluation_report(data):
    """Single evaluatee: one section per stage plus a summary table"""
    styles = _styles()
    story = [Paragraph('Evaluation Report', styles['title'])]
    story.extend(_evaluation_story(data, styles))
    pdf = _build(story, f"Evaluation Report - {data['evaluatee']}")
    logger.info(f"Rendered evaluation report for {data['evaluatee']} ({len(pdf)} bytes)")
    return pdf


def render_multiple_reports(reports):
    """One page per evaluatee with a stage summary table"""
    styles = _styles()
    story = [Paragraph('Evaluation Reports - Multiple Evaluatees', styles['title'])]

    if not reports:
        story.append(Paragraph('No evaluations found.', styles['body']))

    for index, data in enumerate(reports):
        if index > 0:
            story.append(PageBreak())
        story.append(Paragraph(f"{index + 1}. {escape(data['evaluatee'])}", styles['heading']))
        story.append(Paragraph(f"Department: {escape(data['department'])} | Period: {escape(data['period'])}", styles['body']))
        rows = [['Stage', 'Total Score', 'Status', 'Submitted At']]
        for evaluation in data['evaluations']:
            rows.append([
                evaluation['stage_label'],
                f"{evaluation['total_score']:.1f}",
                evaluation['status'],
                evaluation['submitted_at'],
            ])
        story.append(_grid_table(rows, [5*cm, 3*cm, 3.5*cm, 5.5*cm]))

    return _build(story, 'Evaluation Reports')


def render_ranking_report(period, rankings):
    styles = _styles()
    story = [
        Paragraph(f"Ranking - {escape(period.name)}", styles['title']),
        Paragraph(f"{period.start_date} - {period.end_date} | {len(rankings)} evaluatees", styles['body']),
        Spacer(1, 0.3*cm),
    ]

    rows = [['Rank', 'Name', 'Department', 'Score', 'Previous', 'Change']]
    for entry in rankings:
        previous = entry['previous_score']
        change = entry['change']
        rows.append([
            str(entry['rank']),
            Paragraph(escape(entry['evaluatee_name']), styles['cell']),
            Paragraph(escape(entry['department_name']), styles['cell']),
            f"{entry['total_score']:.1f}",
            f"{previous:.1f}" if previous is not None else '-',
            f"{change:+.1f}" if change is not None else '-',
        ])
    story.append(_grid_table(rows, [1.5*cm, 5*cm, 4*cm, 2*cm, 2.2*cm, 2.3*cm], striped=True))
    return _build(story, f"Ranking - {period.name}")
