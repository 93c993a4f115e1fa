# api/evaluation_workflow.py - Completeness checks, submit, resubmit and draft save

from dataclasses import dataclass, field
from django.db import DatabaseError, transaction
from django.utils import timezone
import logging

from .evaluation_exceptions import (
    ConfirmationRequired, EvaluationValidationError, PersistenceError, StageTransitionError,
)
from .evaluation_state import SUBMIT

logger = logging.getLogger(__name__)


@dataclass
class SubmissionCheck:
    untouched: list = field(default_factory=list)
    comment_only: list = field(default_factory=list)
    hold: list = field(default_factory=list)

    @property
    def is_blocked(self):
        return bool(self.untouched)

    @property
    def needs_confirmation(self):
        return bool(self.comment_only or self.hold)

    def to_dict(self):
        def pairs(states):
            return [{'id': s.item.id, 'name': s.item.name} for s in states]

        return {
            'untouched': pairs(self.untouched),
            'comment_only': pairs(self.comment_only),
            'hold': pairs(self.hold),
            'can_submit': not self.is_blocked,
            'needs_confirmation': self.needs_confirmation,
        }


@dataclass
class DraftResult:
    saved: int = 0
    failed: list = field(default_factory=list)
    status_error: str = ''

    @property
    def failed_count(self):
        return len(self.failed)

    @property
    def ok(self):
        return not self.failed and not self.status_error

    def to_dict(self):
        return {
            'saved': self.saved,
            'failed_count': self.failed_count,
            'failed': self.failed,
            'status_error': self.status_error,
        }


class SubmissionWorkflow:
    """
    Finalizes the evaluation owned by an AutosaveController.

    submit/resubmit are all-or-nothing: items, overall fields and the status stamp are
    written in one transaction, so a failure leaves the stored evaluation as it was and the
    in-memory edits intact for a retry. save_draft is best effort per item.
    """

    def __init__(self, controller, actor=None, user=None):
        self.controller = controller
        self.state = controller.state
        self.actor = actor
        self.user = user if user is not None else controller.user

    def check(self):
        return SubmissionCheck(
            untouched=self.state.untouched_items(),
            comment_only=self.state.comment_only_items(),
            hold=self.state.hold_items(),
        )

    def validate(self, confirmed=False):
        check = self.check()
        if check.is_blocked:
            raise EvaluationValidationError(
                'Every item needs a grade or a comment before submitting',
                items=[(s.item.id, s.item.name) for s in check.untouched],
            )
        if check.needs_confirmation and not confirmed:
            raise ConfirmationRequired(check)
        return check

    def submit(self, confirmed=False):
        check = self.validate(confirmed)
        self.controller.cancel_pending()
        self._commit(action='SUBMITTED', check=check)

    def resubmit(self, confirmed=False):
        """Re-commit edits of a submitted evaluation; status stays submitted"""
        if not self.state.is_submitted:
            raise StageTransitionError('Only submitted evaluations can be resubmitted')
        check = self.validate(confirmed)
        self.controller.cancel_pending()
        self._commit(action='RESUBMITTED', check=check)

    def save_draft(self):
        """Persist graded items (HOLD included) without touching status or validating completeness"""
        result = DraftResult()
        for item_state in self.state.items:
            if not item_state.grade:
                continue
            try:
                self.controller.score_store.replace_score(
                    self.state.id, item_state.item_id, item_state.score, item_state.comment, item_state.grade,
                    item_name=item_state.item.name,
                )
                result.saved += 1
            except PersistenceError as e:
                logger.error(f"Draft save of item {item_state.item_id} on evaluation {self.state.id} failed: {e}")
                result.failed.append({'id': item_state.item_id, 'name': item_state.item.name, 'error': e.message})

        if result.saved:
            try:
                self.controller.mark_in_progress(background=False)
            except PersistenceError as e:
                logger.error(f"Draft save on evaluation {self.state.id}: status update failed: {e}")
                result.status_error = e.message

        try:
            self.controller.evaluation_store.log_activity(
                self.state.id,
                'DRAFT_SAVED',
                f"Draft saved ({result.saved} items, {result.failed_count} failed)",
                user=self.user,
                metadata=result.to_dict(),
            )
        except PersistenceError as e:
            self.controller.record_warning('activity', 'Activity log', e)
        logger.info(f"Evaluation {self.state.id}: draft saved, {result.saved} ok, {result.failed_count} failed")
        return result

    def _evaluator_id(self):
        if self.actor is not None:
            return self.actor.employee_id
        return self.state.evaluator_id

    def _commit(self, action, check):
        score_store = self.controller.score_store
        evaluation_store = self.controller.evaluation_store
        submitted_at = timezone.now()
        evaluator_id = self._evaluator_id()

        try:
            with transaction.atomic():
                persisted = 0
                for item_state in self.state.items:
                    if not item_state.grade and not item_state.comment:
                        continue
                    score_store.replace_score(
                        self.state.id, item_state.item_id, item_state.score, item_state.comment,
                        item_state.grade, item_name=item_state.item.name,
                    )
                    persisted += 1

                if self.state.is_final_stage:
                    evaluation_store.update_evaluation(
                        self.state.id,
                        overall_comment=self.state.overall_comment,
                        overall_grade=self.state.overall_grade,
                        final_decision=self.state.final_decision,
                    )

                evaluation_store.update_evaluation(
                    self.state.id, status='submitted', submitted_at=submitted_at, evaluator_id=evaluator_id
                )

                evaluation_store.log_activity(
                    self.state.id,
                    action,
                    f"Evaluation {action.lower()} with {persisted} items "
                    f"({len(check.comment_only)} comment-only, {len(check.hold)} on hold)",
                    user=self.user,
                    metadata={
                        'total_score': self.state.total_score(),
                        'comment_only': [s.item_id for s in check.comment_only],
                        'hold': [s.item_id for s in check.hold],
                    },
                )
        except DatabaseError as e:
            logger.error(f"{action} of evaluation {self.state.id} failed: {e}")
            raise PersistenceError(f"Could not finalize evaluation {self.state.id}: {e}")
        except PersistenceError:
            logger.error(f"{action} of evaluation {self.state.id} rolled back")
            raise

        self.state.apply(SUBMIT)
        self.state.submitted_at = submitted_at
        self.state.evaluator_id = evaluator_id
        logger.info(f"Evaluation {self.state.id} {action.lower()} (total {self.state.display_total()})")
