# api/evaluation_assignment.py - Creating pending evaluations for a period and closing finished periods

from django.utils import timezone
import logging

from .models import Employee
from .evaluation_exceptions import NotFoundError, StageTransitionError
from .evaluation_models import EvaluationActivityLog, EvaluationPeriod
from .evaluation_state import STAGE_ORDER
from .evaluation_stores import EvaluationStore

logger = logging.getLogger(__name__)


class EvaluationAssignmentManager:
    """Assigns evaluations to employees and keeps period status in line with the calendar"""

    @staticmethod
    def assign(period, evaluatee_ids=None, stages=None, user=None, evaluation_store=None):
        """
        ✅ Create pending evaluations (no items) for every active employee, or the given ones,
        at every requested stage. Existing (evaluatee, period, stage) rows are skipped.
        Returns {'created': n, 'skipped': n, 'evaluation_ids': [...]}
        """
        evaluation_store = evaluation_store or EvaluationStore()
        stages = list(stages or STAGE_ORDER)
        unknown = [s for s in stages if s not in STAGE_ORDER]
        if unknown:
            raise StageTransitionError(f"Unknown stages: {', '.join(unknown)}")

        employees = Employee.objects.filter(is_deleted=False)
        if evaluatee_ids is not None:
            employees = employees.filter(id__in=evaluatee_ids)
            missing = set(evaluatee_ids) - set(employees.values_list('id', flat=True))
            if missing:
                raise NotFoundError(f"Employees not found: {sorted(missing)}")

        records = [
            {'evaluatee_id': employee_id, 'period_id': period.id, 'stage': stage}
            for employee_id in employees.values_list('id', flat=True)
            for stage in stages
        ]
        created = evaluation_store.insert_evaluations(records)

        # backends without RETURNING leave pk unset after bulk_create
        created_ids = [e.id for e in created if e.id is not None]

        EvaluationActivityLog.objects.bulk_create([
            EvaluationActivityLog(
                evaluation_id=evaluation_id,
                action='ASSIGNED',
                description=f"Evaluation assigned for period {period.name}",
                performed_by=user,
            )
            for evaluation_id in created_ids
        ])

        logger.info(
            f"Assigned {len(created)} evaluations for period {period.name} "
            f"({len(records) - len(created)} already existed)"
        )
        return {
            'created': len(created),
            'skipped': len(records) - len(created),
            'evaluation_ids': created_ids,
        }

    @staticmethod
    def complete_finished_periods(today=None):
        """Active periods whose end date has passed become completed"""
        today = today or timezone.localdate()
        finished = EvaluationPeriod.objects.filter(status='active', end_date__lt=today)
        names = list(finished.values_list('name', flat=True))
        updated = finished.update(status='completed', updated_at=timezone.now())
        if updated:
            logger.info(f"Completed {updated} finished periods: {', '.join(names)}")
        return updated
