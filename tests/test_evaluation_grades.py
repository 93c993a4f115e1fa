"""Tests for grade validation, score derivation and item classification."""

import pytest

from api.evaluation_exceptions import InvalidGradeError
from api.evaluation_grades import (
    COMMENT_ONLY, GRADED, HOLD, ON_HOLD, UNTOUCHED,
    classify, default_grade_scores, has_text, is_graded, is_hold,
    normalize_enabled_grades, resolve_score, toggle_enabled_grade, validate_grade,
)

SCORES = {'A': 5, 'B': 4, 'C': 3, 'D': 2, 'E': 1}


class TestResolveScore:
    def test_letter_maps_through_item_scores(self):
        assert resolve_score('B', SCORES) == 4

    def test_empty_and_hold_score_zero(self):
        assert resolve_score('', SCORES) == 0
        assert resolve_score(HOLD, SCORES) == 0

    def test_letter_missing_from_mapping_scores_zero(self):
        assert resolve_score('C', {'A': 10}) == 0

    def test_mapping_need_not_be_monotonic(self):
        assert resolve_score('E', {'A': 1, 'E': 9}) == 9

    def test_unknown_letter_rejected(self):
        with pytest.raises(InvalidGradeError):
            resolve_score('F', SCORES)


class TestValidateGrade:
    def test_empty_hold_and_enabled_letters_accepted(self):
        assert validate_grade('', ['A']) == ''
        assert validate_grade(HOLD, ['A']) == HOLD
        assert validate_grade('A', ['A', 'B']) == 'A'

    def test_disabled_letter_rejected(self):
        with pytest.raises(InvalidGradeError):
            validate_grade('C', ['A', 'B'])

    def test_hold_can_be_disallowed(self):
        with pytest.raises(InvalidGradeError):
            validate_grade(HOLD, ['A'], allow_hold=False)

    def test_unknown_grade_rejected(self):
        with pytest.raises(InvalidGradeError):
            validate_grade('Z', ['A'])


class TestEnabledGrades:
    def test_normalize_orders_and_dedupes(self):
        assert normalize_enabled_grades(['C', 'A', 'C']) == ['A', 'C']

    def test_toggle_off(self):
        assert toggle_enabled_grade(['A', 'B', 'C'], 'B') == ['A', 'C']

    def test_toggle_on_keeps_scale_order(self):
        assert toggle_enabled_grade(['A', 'E'], 'C') == ['A', 'C', 'E']

    def test_last_enabled_grade_cannot_be_removed(self):
        assert toggle_enabled_grade(['D'], 'D') == ['D']

    def test_toggle_unknown_grade_rejected(self):
        with pytest.raises(InvalidGradeError):
            toggle_enabled_grade(['A'], 'HOLD')


class TestClassify:
    def test_untouched(self):
        assert classify('', '') == UNTOUCHED

    def test_whitespace_comment_is_untouched(self):
        assert classify('', '   \n') == UNTOUCHED

    def test_comment_only(self):
        assert classify('', 'needs more time') == COMMENT_ONLY

    def test_graded(self):
        assert classify('B', '') == GRADED

    def test_hold_wins_over_comment(self):
        assert classify(HOLD, 'waiting for data') == ON_HOLD


class TestHelpers:
    def test_hold_is_not_graded(self):
        assert is_hold(HOLD)
        assert not is_graded(HOLD)
        assert not is_graded('')
        assert is_graded('A')

    def test_has_text(self):
        assert has_text('x')
        assert not has_text(' ')
        assert not has_text(None)

    def test_default_grade_scores_from_settings(self, settings):
        settings.EVALUATION_SYSTEM_SETTINGS = {
            **settings.EVALUATION_SYSTEM_SETTINGS, 'DEFAULT_GRADE_SCORES': {'A': 10, 'B': 8},
        }
        assert default_grade_scores() == {'A': 10, 'B': 8}
