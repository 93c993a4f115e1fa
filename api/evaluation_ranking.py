# api/evaluation_ranking.py - Period ranking, results listing and Excel export

from io import BytesIO
from django.db.models import Sum
import logging

import openpyxl
from openpyxl.styles import Font, PatternFill, Border, Side
from openpyxl.utils import get_column_letter

from .evaluation_models import Evaluation
from .evaluation_state import STAGE_LABELS
from .evaluation_stores import evaluatee_department_name, evaluatee_display_name

logger = logging.getLogger(__name__)


def _final_scores(period):
    """[(evaluation, total)] for submitted final evaluations of a period"""
    evaluations = Evaluation.objects.filter(
        period=period, stage='final', status='submitted'
    ).select_related('evaluatee', 'evaluatee__department').annotate(score_sum=Sum('scores__score'))
    return [(e, float(e.score_sum or 0)) for e in evaluations]


def build_ranking(period):
    """
    Evaluatees with a submitted final evaluation, best total first, ranked 1..n.
    Each entry carries the previous period's final score and the change against it.

    "Previous period" is the one immediately before: the latest start date strictly
    earlier than this period's (EvaluationPeriod.get_previous_period), the same rule the
    reference panel uses. With half-year periods that is the prior half, not the same
    half of last year. Evaluatees without a submitted final there get None for both.
    """
    current = _final_scores(period)
    previous_period = period.get_previous_period()
    previous = {}
    if previous_period:
        previous = {
            e.evaluatee_id: total for e, total in _final_scores(previous_period) if e.evaluatee_id is not None
        }

    entries = []
    for evaluation, total in current:
        evaluatee_id = evaluation.evaluatee_id
        previous_score = previous.get(evaluatee_id) if evaluatee_id is not None else None
        entries.append({
            'evaluation_id': evaluation.id,
            'evaluatee_id': evaluatee_id,
            'evaluatee_name': evaluatee_display_name(evaluation.evaluatee),
            'department_name': evaluatee_department_name(evaluation.evaluatee),
            'total_score': round(total, 1),
            'previous_score': round(previous_score, 1) if previous_score is not None else None,
            'change': round(total - previous_score, 1) if previous_score is not None else None,
            'final_decision': evaluation.final_decision,
            'submitted_at': evaluation.submitted_at,
        })

    entries.sort(key=lambda entry: (-entry['total_score'], entry['evaluatee_name'], entry['evaluation_id']))
    for rank, entry in enumerate(entries, 1):
        entry['rank'] = rank

    logger.info(
        f"Ranking for period {period.id}: {len(entries)} evaluatees, "
        f"previous period {previous_period.id if previous_period else None}"
    )
    return entries


def annotate_totals(queryset):
    return queryset.annotate(score_sum=Sum('scores__score'))


def build_results(queryset):
    """Rows of the results listing; ``queryset`` should already be visibility filtered"""
    rows = []
    evaluations = annotate_totals(queryset.select_related('evaluatee', 'evaluatee__department', 'period'))
    for evaluation in evaluations:
        rows.append({
            'id': evaluation.id,
            'evaluatee_id': evaluation.evaluatee_id,
            'evaluatee_name': evaluatee_display_name(evaluation.evaluatee),
            'department_name': evaluatee_department_name(evaluation.evaluatee),
            'period_id': evaluation.period_id,
            'period_name': evaluation.period.name,
            'stage': evaluation.stage,
            'stage_label': STAGE_LABELS.get(evaluation.stage, evaluation.stage),
            'status': evaluation.status,
            'total_score': round(float(evaluation.score_sum or 0), 1),
            'submitted_at': evaluation.submitted_at,
        })
    return rows


def results_workbook(rows):
    """Results listing as .xlsx bytes"""
    wb = openpyxl.Workbook()

    header_fill = PatternFill(start_color='366092', end_color='366092', fill_type='solid')
    header_font = Font(bold=True, color='FFFFFF', size=11)
    border = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin')
    )

    ws = wb.active
    ws.title = 'Results'

    headers = ['#', 'Evaluatee', 'Department', 'Period', 'Stage', 'Status', 'Total Score', 'Submitted At']
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.fill = header_fill
        cell.font = header_font
        cell.border = border

    for idx, row in enumerate(rows, 1):
        submitted_at = row['submitted_at'].strftime('%Y-%m-%d %H:%M') if row['submitted_at'] else ''
        values = [
            idx, row['evaluatee_name'], row['department_name'], row['period_name'],
            row['stage_label'], row['status'], row['total_score'], submitted_at,
        ]
        for col, value in enumerate(values, 1):
            ws.cell(row=idx + 1, column=col, value=value).border = border

    widths = [6, 28, 22, 22, 20, 14, 12, 18]
    for col, width in enumerate(widths, 1):
        ws.column_dimensions[get_column_letter(col)].width = width

    output = BytesIO()
    wb.save(output)
    return output.getvalue()
