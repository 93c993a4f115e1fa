"""Tests for the in-memory evaluation aggregate and the status machine."""

import pytest

from api.evaluation_exceptions import InvalidGradeError, NotFoundError, StageTransitionError
from api.evaluation_grades import HOLD
from api.evaluation_state import (
    IN_PROGRESS, PENDING, SAVE, SUBMIT, SUBMITTED,
    EvaluationState, ItemState, RubricItem, next_status, stages_before,
)

SCORES = {'A': 5, 'B': 4, 'C': 3, 'D': 2, 'E': 1}


def make_state(stage='self', status=PENDING):
    items = [
        ItemState(item=RubricItem(id=item_id, name=f'Item {item_id}', weight=weight, grade_scores=dict(SCORES)))
        for item_id, weight in ((1, 30), (2, 20), (3, 50))
    ]
    return EvaluationState(id=7, period_id=1, stage=stage, status=status, items=items)


class TestStatusMachine:
    def test_first_save_starts_progress(self):
        assert next_status(PENDING, SAVE) == IN_PROGRESS

    def test_save_keeps_other_statuses(self):
        assert next_status(IN_PROGRESS, SAVE) == IN_PROGRESS
        assert next_status(SUBMITTED, SAVE) == SUBMITTED

    def test_submit_from_any_status(self):
        for status in (PENDING, IN_PROGRESS, SUBMITTED):
            assert next_status(status, SUBMIT) == SUBMITTED

    def test_unknown_event(self):
        with pytest.raises(StageTransitionError):
            next_status(PENDING, 'approve')

    def test_apply_reports_change(self):
        state = make_state()
        assert state.apply(SAVE) is True
        assert state.apply(SAVE) is False
        assert state.status == IN_PROGRESS


class TestStages:
    def test_stages_before(self):
        assert stages_before('self') == ()
        assert stages_before('final') == ('self', 'manager', 'mg')

    def test_unknown_stage(self):
        with pytest.raises(StageTransitionError):
            stages_before('ceo')


class TestItemState:
    def test_score_follows_grade(self):
        state = make_state()
        item = state.item(1)
        item.set_grade('B')
        assert item.score == 4
        item.set_grade('A')
        assert item.score == 5

    def test_hold_scores_zero_and_keeps_comment(self):
        item = make_state().item(2)
        item.comment = 'pending review'
        item.set_grade(HOLD)
        assert item.score == 0
        assert item.is_hold
        assert item.comment == 'pending review'

    def test_clear_grade_keeps_comment(self):
        item = make_state().item(2)
        item.comment = 'note'
        item.set_grade('C')
        item.clear_grade()
        assert (item.grade, item.score, item.comment) == ('', 0, 'note')

    def test_disabled_grade_rejected(self):
        item = make_state().item(1)
        item.item.enabled_grades = ['A', 'B']
        with pytest.raises(InvalidGradeError):
            item.set_grade('E')
        assert item.grade == ''

    def test_unknown_item(self):
        with pytest.raises(NotFoundError):
            make_state().item(99)


class TestEvaluationState:
    def test_total_is_plain_sum_of_scores(self):
        state = make_state()
        state.item(1).set_grade('A')
        state.item(2).set_grade('C')
        state.item(3).set_grade(HOLD)
        assert state.total_score() == 8

    def test_weight_does_not_affect_total(self):
        state = make_state()
        state.item(1).item.weight = 1000
        state.item(1).set_grade('E')
        assert state.total_score() == 1

    def test_completion_counts_grades_hold_and_comments(self):
        state = make_state()
        state.item(1).set_grade('B')
        state.item(2).set_grade(HOLD)
        state.item(3).comment = '   '
        assert state.completion_count() == 2
        state.item(3).comment = 'fine'
        assert state.completion_count() == 3

    def test_find_first_incomplete(self):
        state = make_state()
        state.item(1).comment = 'started'
        assert state.find_first_incomplete() == 1
        state.item(2).set_grade(HOLD)
        assert state.find_first_incomplete() == 2
        state.item(3).set_grade('D')
        assert state.find_first_incomplete() is None

    def test_classification_lists(self):
        state = make_state()
        state.item(1).set_grade('A')
        state.item(2).comment = 'comment only'
        state.item(3).set_grade(HOLD)
        assert state.untouched_items() == []
        assert [s.item_id for s in state.comment_only_items()] == [2]
        assert [s.item_id for s in state.hold_items()] == [3]

    def test_display_total_rounds_to_one_decimal(self):
        state = make_state()
        state.item(1).item.grade_scores = {'A': 2.25}
        state.item(1).set_grade('A')
        assert state.display_total() == 2.2
