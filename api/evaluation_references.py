# api/evaluation_references.py - Read-only projections of earlier stages and the previous period's final

from dataclasses import dataclass, field
from typing import Optional
import logging

from django.db import DatabaseError

from .evaluation_exceptions import EvaluationError
from .evaluation_state import STAGE_LABELS, SUBMITTED, stages_before
from .evaluation_stores import EvaluationStore, ScoreStore

logger = logging.getLogger(__name__)

PREV_FINAL = 'prev_final'


@dataclass
class ReferenceEvaluation:
    stage: str
    stage_label: str
    total_score: float
    overall_comment: str = ''
    items: dict = field(default_factory=dict)
    evaluation_id: Optional[int] = None
    period_id: Optional[int] = None

    def to_dict(self):
        return {
            'stage': self.stage,
            'stage_label': self.stage_label,
            'total_score': round(self.total_score, 1),
            'overall_comment': self.overall_comment,
            'evaluation_id': self.evaluation_id,
            'period_id': self.period_id,
            'items': {str(item_id): values for item_id, values in self.items.items()},
        }


class ReferenceAggregator:
    """
    Collects submitted evaluations of earlier stages (same evaluatee and period) and the
    evaluatee's submitted final evaluation from the previous period. Never mutates anything.
    """

    def __init__(self, evaluation_store=None, score_store=None):
        self.evaluation_store = evaluation_store or EvaluationStore()
        self.score_store = score_store or ScoreStore()

    def load_references(self, evaluatee_id, period_id, current_stage):
        if evaluatee_id is None:
            return []

        references = []
        earlier = stages_before(current_stage)
        if earlier:
            references.extend(self._earlier_stage_references(evaluatee_id, period_id, earlier))

        previous_final = self._previous_final_reference(evaluatee_id, period_id)
        if previous_final is not None:
            references.append(previous_final)
        return references

    def _earlier_stage_references(self, evaluatee_id, period_id, stages):
        try:
            evaluations = self.evaluation_store.list_evaluations(
                evaluatee_id=evaluatee_id, period_id=period_id, stages=stages, statuses=[SUBMITTED]
            )
        except (EvaluationError, DatabaseError) as e:
            logger.warning(f"Reference lookup failed for evaluatee {evaluatee_id} period {period_id}: {e}")
            return []

        by_stage = {evaluation.stage: evaluation for evaluation in evaluations}
        references = []
        for stage in stages:
            evaluation = by_stage.get(stage)
            if evaluation is None:
                continue
            reference = self._build(evaluation, stage)
            if reference is not None:
                references.append(reference)
        return references

    def _previous_final_reference(self, evaluatee_id, period_id):
        try:
            previous_period = self.evaluation_store.get_previous_period(period_id)
        except (EvaluationError, DatabaseError) as e:
            logger.warning(f"Previous period lookup failed for period {period_id}: {e}")
            return None

        if previous_period is None:
            logger.debug(f"No period before {period_id}; no previous final reference")
            return None

        try:
            evaluations = self.evaluation_store.list_evaluations(
                evaluatee_id=evaluatee_id, period_id=previous_period.id, stage='final', statuses=[SUBMITTED]
            )
        except (EvaluationError, DatabaseError) as e:
            logger.warning(f"Previous final lookup failed for evaluatee {evaluatee_id}: {e}")
            return None

        if not evaluations:
            return None
        return self._build(evaluations[0], PREV_FINAL)

    def _build(self, evaluation, stage):
        try:
            scores = self.score_store.list_scores(evaluation.id)
        except (EvaluationError, DatabaseError) as e:
            logger.warning(f"Score lookup failed for reference evaluation {evaluation.id}: {e}")
            return None

        return ReferenceEvaluation(
            stage=stage,
            stage_label=STAGE_LABELS[stage],
            total_score=float(sum(row['score'] or 0 for row in scores.values())),
            overall_comment=evaluation.overall_comment or '',
            items=scores,
            evaluation_id=evaluation.id,
            period_id=evaluation.period_id,
        )
