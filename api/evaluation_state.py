# api/evaluation_state.py - In-memory evaluation aggregate (one stage, one evaluatee, one period)

from dataclasses import dataclass, field
from typing import Optional

from .evaluation_exceptions import NotFoundError, StageTransitionError
from .evaluation_grades import (
    GRADE_KEYS, UNTOUCHED, COMMENT_ONLY, ON_HOLD,
    classify, default_grade_scores, has_text, is_graded, is_hold, resolve_score, validate_grade,
)

STAGE_ORDER = ('self', 'manager', 'mg', 'final')

STAGE_LABELS = {
    'self': 'Self Evaluation',
    'manager': 'Manager Evaluation',
    'mg': 'MG Evaluation',
    'final': 'Final Evaluation',
    'prev_final': 'Previous Period Final',
}

PENDING = 'pending'
IN_PROGRESS = 'in_progress'
SUBMITTED = 'submitted'

# status machine events
SAVE = 'save'
SUBMIT = 'submit'


def next_status(status, event):
    """
    pending -> in_progress on the first save, anything -> submitted on submit.
    Saving a submitted evaluation keeps it submitted.
    """
    if event == SAVE:
        return IN_PROGRESS if status == PENDING else status
    if event == SUBMIT:
        return SUBMITTED
    raise StageTransitionError(f"Unknown status event '{event}'")


def stages_before(stage):
    if stage not in STAGE_ORDER:
        raise StageTransitionError(f"Unknown stage '{stage}'")
    return STAGE_ORDER[:STAGE_ORDER.index(stage)]


@dataclass
class RubricItem:
    id: int
    name: str
    description: str = ''
    weight: int = 0
    grade_scores: dict = field(default_factory=default_grade_scores)
    grade_criteria: dict = field(default_factory=dict)
    enabled_grades: list = field(default_factory=lambda: list(GRADE_KEYS))
    category: str = ''
    subcategory: str = ''
    order_index: int = 0
    hide_criteria_from_self: bool = False

    @classmethod
    def from_model(cls, item):
        return cls(
            id=item.id,
            name=item.name,
            description=item.description or '',
            weight=item.weight or 0,
            grade_scores=dict(item.grade_scores or {}),
            grade_criteria=dict(item.grade_criteria or {}),
            enabled_grades=list(item.enabled_grades or GRADE_KEYS),
            category=item.category or '',
            subcategory=item.subcategory or '',
            order_index=item.order_index,
            hide_criteria_from_self=item.hide_criteria_from_self,
        )


@dataclass
class ItemState:
    item: RubricItem
    grade: str = ''
    score: float = 0
    comment: str = ''

    @property
    def item_id(self):
        return self.item.id

    def set_grade(self, grade):
        validate_grade(grade, self.item.enabled_grades)
        self.grade = grade
        self.score = resolve_score(grade, self.item.grade_scores)

    def clear_grade(self):
        """Back to no grade; the comment is left alone"""
        self.grade = ''
        self.score = 0

    @property
    def classification(self):
        return classify(self.grade, self.comment)

    @property
    def is_graded(self):
        return is_graded(self.grade)

    @property
    def is_hold(self):
        return is_hold(self.grade)

    @property
    def has_comment(self):
        return has_text(self.comment)

    @property
    def is_complete(self):
        return bool(self.grade) or self.has_comment

    def snapshot(self):
        return {'grade': self.grade, 'score': self.score, 'comment': self.comment}


@dataclass
class EvaluationState:
    id: int
    period_id: int
    stage: str
    status: str
    items: list
    evaluatee_id: Optional[int] = None
    evaluatee_name: str = ''
    period_name: str = ''
    template_id: Optional[int] = None
    overall_comment: str = ''
    overall_grade: str = ''
    final_decision: str = ''
    evaluator_id: Optional[int] = None
    submitted_at: Optional[object] = None

    def item(self, item_id):
        for state in self.items:
            if state.item.id == item_id:
                return state
        raise NotFoundError(f"Item {item_id} is not part of evaluation {self.id}")

    @property
    def is_submitted(self):
        return self.status == SUBMITTED

    @property
    def is_final_stage(self):
        return self.stage == 'final'

    def total_score(self):
        """Plain sum of item scores; weight is descriptive only"""
        return float(sum(state.score for state in self.items))

    def display_total(self):
        return round(self.total_score(), 1)

    def completion_count(self):
        return sum(1 for state in self.items if state.is_complete)

    def find_first_incomplete(self):
        for index, state in enumerate(self.items):
            if not state.grade and not state.has_comment:
                return index
        return None

    def items_by_classification(self, classification):
        return [state for state in self.items if state.classification == classification]

    def untouched_items(self):
        return self.items_by_classification(UNTOUCHED)

    def comment_only_items(self):
        return self.items_by_classification(COMMENT_ONLY)

    def hold_items(self):
        return self.items_by_classification(ON_HOLD)

    def apply(self, event):
        """Run the status machine; returns True when the status changed"""
        new_status = next_status(self.status, event)
        changed = new_status != self.status
        self.status = new_status
        return changed
