# api/evaluation_stores.py - Template, evaluation and score stores over the Django ORM

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone
import logging

from .evaluation_exceptions import NotFoundError, PersistenceError
from .evaluation_models import (
    Evaluation, EvaluationActivityLog, EvaluationItem, EvaluationPeriod,
    EvaluationScore, EvaluationTemplate,
)
from .evaluation_state import EvaluationState, ItemState, RubricItem

logger = logging.getLogger(__name__)


def deleted_user_placeholder():
    return settings.EVALUATION_SYSTEM_SETTINGS.get('DELETED_USER_PLACEHOLDER', 'Unknown employee')


def evaluatee_display_name(employee):
    """Name to show for an evaluatee; deleted users get the placeholder"""
    if employee is None or employee.is_deleted:
        return deleted_user_placeholder()
    return employee.full_name or deleted_user_placeholder()


def evaluatee_department_name(employee):
    if employee is None or employee.is_deleted or not employee.department:
        return deleted_user_placeholder()
    return employee.department.name


class TemplateProvider:

    def get_template_items(self, template_id):
        if template_id is None or not EvaluationTemplate.objects.filter(id=template_id).exists():
            raise NotFoundError(f"Evaluation template {template_id} not found")
        items = EvaluationItem.objects.filter(template_id=template_id).order_by('order_index', 'id')
        return [RubricItem.from_model(item) for item in items]


class EvaluationStore:

    def get_evaluation(self, evaluation_id):
        try:
            return Evaluation.objects.select_related(
                'evaluatee', 'evaluatee__department', 'period', 'period__template', 'evaluator'
            ).get(id=evaluation_id)
        except Evaluation.DoesNotExist:
            raise NotFoundError(f"Evaluation {evaluation_id} not found")

    def list_evaluations(self, evaluatee_id=None, period_id=None, stage=None, statuses=None, stages=None):
        queryset = Evaluation.objects.select_related('evaluatee', 'period')
        if evaluatee_id is not None:
            queryset = queryset.filter(evaluatee_id=evaluatee_id)
        if period_id is not None:
            queryset = queryset.filter(period_id=period_id)
        if stage is not None:
            queryset = queryset.filter(stage=stage)
        if stages is not None:
            queryset = queryset.filter(stage__in=list(stages))
        if statuses:
            queryset = queryset.filter(status__in=list(statuses))
        return list(queryset.order_by('id'))

    def update_evaluation(self, evaluation_id, **fields):
        fields['updated_at'] = timezone.now()
        try:
            updated = Evaluation.objects.filter(id=evaluation_id).update(**fields)
        except DatabaseError as e:
            logger.error(f"Failed to update evaluation {evaluation_id}: {e}")
            raise PersistenceError(f"Could not update evaluation {evaluation_id}: {e}")
        if not updated:
            raise NotFoundError(f"Evaluation {evaluation_id} not found")

    def insert_evaluations(self, records):
        """
        Create pending evaluations from dicts with evaluatee_id, period_id and stage.
        Rows that already exist for the same (evaluatee, period, stage) are skipped.
        Returns the newly created evaluations.
        """
        records = list(records)
        if not records:
            return []

        period_ids = {r['period_id'] for r in records}
        existing = set(
            Evaluation.objects.filter(period_id__in=period_ids).values_list('evaluatee_id', 'period_id', 'stage')
        )

        to_create = []
        seen = set()
        for record in records:
            key = (record['evaluatee_id'], record['period_id'], record['stage'])
            if key in existing or key in seen:
                continue
            seen.add(key)
            to_create.append(Evaluation(
                evaluatee_id=record['evaluatee_id'],
                period_id=record['period_id'],
                stage=record['stage'],
                status=record.get('status', 'pending'),
            ))

        try:
            with transaction.atomic():
                created = Evaluation.objects.bulk_create(to_create)
        except DatabaseError as e:
            logger.error(f"Failed to insert {len(to_create)} evaluations: {e}")
            raise PersistenceError(f"Could not create evaluations: {e}")

        logger.info(f"Inserted {len(created)} evaluations ({len(records) - len(created)} already existed)")
        return created

    def get_period(self, period_id):
        try:
            return EvaluationPeriod.objects.select_related('template').get(id=period_id)
        except EvaluationPeriod.DoesNotExist:
            raise NotFoundError(f"Evaluation period {period_id} not found")

    def get_previous_period(self, period_id):
        return self.get_period(period_id).get_previous_period()

    def log_activity(self, evaluation_id, action, description, user=None, metadata=None):
        try:
            with transaction.atomic():
                EvaluationActivityLog.objects.create(
                    evaluation_id=evaluation_id,
                    action=action,
                    description=description,
                    performed_by=user,
                    metadata=metadata or {},
                )
        except DatabaseError as e:
            logger.error(f"❌ Failed to log {action} on evaluation {evaluation_id}: {e}")
            raise PersistenceError(f"Could not log activity: {e}")


class ScoreStore:
    """Item score rows keyed by (evaluation, item)"""

    def replace_score(self, evaluation_id, item_id, score, comment, grade, item_name=None):
        """
        Idempotent write: one row per (evaluation, item) holding the latest values.
        A uniqueness violation on the upsert falls back to delete-then-insert.
        """
        values = {'score': score, 'comment': comment or '', 'grade': grade or ''}
        try:
            with transaction.atomic():
                EvaluationScore.objects.update_or_create(
                    evaluation_id=evaluation_id, item_id=item_id, defaults=values
                )
            return
        except IntegrityError as e:
            logger.warning(
                f"Upsert conflict for evaluation {evaluation_id} item {item_id}, "
                f"falling back to delete+insert: {e}"
            )
        except DatabaseError as e:
            logger.error(f"Score upsert failed for evaluation {evaluation_id} item {item_id}: {e}")
            raise PersistenceError(str(e), item_id=item_id, item_name=item_name)

        try:
            with transaction.atomic():
                EvaluationScore.objects.filter(evaluation_id=evaluation_id, item_id=item_id).delete()
                EvaluationScore.objects.create(evaluation_id=evaluation_id, item_id=item_id, **values)
        except DatabaseError as e:
            logger.error(f"Delete+insert fallback failed for evaluation {evaluation_id} item {item_id}: {e}")
            raise PersistenceError(str(e), item_id=item_id, item_name=item_name)

    def delete_score(self, evaluation_id, item_id, item_name=None):
        try:
            EvaluationScore.objects.filter(evaluation_id=evaluation_id, item_id=item_id).delete()
        except DatabaseError as e:
            logger.error(f"Score delete failed for evaluation {evaluation_id} item {item_id}: {e}")
            raise PersistenceError(str(e), item_id=item_id, item_name=item_name)

    def list_scores(self, evaluation_id):
        rows = EvaluationScore.objects.filter(evaluation_id=evaluation_id).values(
            'item_id', 'grade', 'score', 'comment'
        )
        return {
            row['item_id']: {'grade': row['grade'], 'score': row['score'], 'comment': row['comment']}
            for row in rows
        }

    def total_score(self, evaluation_id):
        total = EvaluationScore.objects.filter(evaluation_id=evaluation_id).aggregate(total=Sum('score'))['total']
        return float(total or 0)


def load_evaluation_state(evaluation_id, evaluation_store=None, template_provider=None, score_store=None):
    """
    Build the in-memory aggregate: template items in declared order merged with stored scores.
    Missing evaluation or template is fatal; a deleted evaluatee only changes the display name.
    """
    evaluation_store = evaluation_store or EvaluationStore()
    template_provider = template_provider or TemplateProvider()
    score_store = score_store or ScoreStore()

    evaluation = evaluation_store.get_evaluation(evaluation_id)
    period = evaluation.period
    if period.template_id is None:
        raise NotFoundError(f"Period '{period.name}' has no evaluation template")

    rubric = template_provider.get_template_items(period.template_id)
    stored = score_store.list_scores(evaluation.id)

    items = []
    for item in rubric:
        row = stored.get(item.id)
        if row:
            items.append(ItemState(item=item, grade=row['grade'], score=row['score'], comment=row['comment']))
        else:
            items.append(ItemState(item=item))

    if evaluation.evaluatee is None or evaluation.evaluatee.is_deleted:
        logger.warning(f"Evaluation {evaluation.id} has no active evaluatee, using placeholder name")

    return EvaluationState(
        id=evaluation.id,
        period_id=period.id,
        period_name=period.name,
        template_id=period.template_id,
        stage=evaluation.stage,
        status=evaluation.status,
        items=items,
        evaluatee_id=evaluation.evaluatee_id,
        evaluatee_name=evaluatee_display_name(evaluation.evaluatee),
        overall_comment=evaluation.overall_comment,
        overall_grade=evaluation.overall_grade,
        final_decision=evaluation.final_decision,
        evaluator_id=evaluation.evaluator_id,
        submitted_at=evaluation.submitted_at,
    )
