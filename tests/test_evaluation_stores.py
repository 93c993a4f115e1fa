"""Tests for the ORM backed stores and state loading."""

import pytest
from django.db import DatabaseError, IntegrityError

from api.evaluation_exceptions import NotFoundError, PersistenceError
from api.evaluation_models import Evaluation, EvaluationActivityLog, EvaluationScore
from api.evaluation_stores import (
    EvaluationStore, ScoreStore, TemplateProvider, evaluatee_display_name, load_evaluation_state,
)


@pytest.mark.django_db
class TestScoreStore:
    def test_replace_is_idempotent(self, people, periods, items, make_evaluation):
        evaluation = make_evaluation(people['staff'], periods['p2'])
        store = ScoreStore()
        store.replace_score(evaluation.id, items[0].id, 4, 'good', 'B')
        store.replace_score(evaluation.id, items[0].id, 4, 'good', 'B')
        assert EvaluationScore.objects.filter(evaluation=evaluation).count() == 1

    def test_replace_keeps_latest_values(self, people, periods, items, make_evaluation):
        evaluation = make_evaluation(people['staff'], periods['p2'])
        store = ScoreStore()
        store.replace_score(evaluation.id, items[0].id, 4, 'good', 'B')
        store.replace_score(evaluation.id, items[0].id, 5, 'great', 'A')
        assert store.list_scores(evaluation.id) == {items[0].id: {'grade': 'A', 'score': 5, 'comment': 'great'}}
        assert store.total_score(evaluation.id) == 5

    def test_conflict_falls_back_to_delete_insert(self, people, periods, items, make_evaluation, monkeypatch):
        evaluation = make_evaluation(people['staff'], periods['p2'], grades={items[0]: ('C', '')})

        def conflict(*args, **kwargs):
            raise IntegrityError('duplicate key')

        monkeypatch.setattr(EvaluationScore.objects, 'update_or_create', conflict)
        ScoreStore().replace_score(evaluation.id, items[0].id, 5, 'redo', 'A')
        row = EvaluationScore.objects.get(evaluation=evaluation, item=items[0])
        assert (row.grade, row.score, row.comment) == ('A', 5, 'redo')

    def test_failed_fallback_raises_persistence_error(self, people, periods, items, make_evaluation, monkeypatch):
        evaluation = make_evaluation(people['staff'], periods['p2'])

        def conflict(*args, **kwargs):
            raise IntegrityError('duplicate key')

        def broken(*args, **kwargs):
            raise DatabaseError('disk full')

        monkeypatch.setattr(EvaluationScore.objects, 'update_or_create', conflict)
        monkeypatch.setattr(EvaluationScore.objects, 'create', broken)
        with pytest.raises(PersistenceError) as exc_info:
            ScoreStore().replace_score(evaluation.id, items[0].id, 5, '', 'A', item_name='Job performance')
        assert exc_info.value.item_id == items[0].id
        assert exc_info.value.item_name == 'Job performance'

    def test_delete_score(self, people, periods, items, make_evaluation):
        evaluation = make_evaluation(people['staff'], periods['p2'], grades={items[1]: ('HOLD', 'x')})
        ScoreStore().delete_score(evaluation.id, items[1].id)
        assert not EvaluationScore.objects.filter(evaluation=evaluation).exists()


@pytest.mark.django_db
class TestEvaluationStore:
    def test_missing_evaluation(self):
        with pytest.raises(NotFoundError):
            EvaluationStore().get_evaluation(12345)

    def test_update_missing_evaluation(self):
        with pytest.raises(NotFoundError):
            EvaluationStore().update_evaluation(12345, status='in_progress')

    def test_insert_skips_existing_and_duplicates(self, people, periods, make_evaluation):
        make_evaluation(people['staff'], periods['p2'], stage='self')
        records = [
            {'evaluatee_id': people['staff'].id, 'period_id': periods['p2'].id, 'stage': 'self'},
            {'evaluatee_id': people['staff'].id, 'period_id': periods['p2'].id, 'stage': 'manager'},
            {'evaluatee_id': people['staff'].id, 'period_id': periods['p2'].id, 'stage': 'manager'},
        ]
        created = EvaluationStore().insert_evaluations(records)
        assert len(created) == 1
        assert Evaluation.objects.filter(evaluatee=people['staff'], period=periods['p2']).count() == 2

    def test_list_filters(self, people, periods, make_evaluation):
        submitted = make_evaluation(people['staff'], periods['p2'], stage='self', status='submitted')
        make_evaluation(people['staff'], periods['p2'], stage='manager')
        make_evaluation(people['other'], periods['p2'], stage='self', status='submitted')
        found = EvaluationStore().list_evaluations(
            evaluatee_id=people['staff'].id, period_id=periods['p2'].id, statuses=['submitted'],
        )
        assert found == [submitted]

    def test_previous_period(self, periods):
        assert EvaluationStore().get_previous_period(periods['p2'].id) == periods['p1']
        assert EvaluationStore().get_previous_period(periods['p0'].id) is None

    def test_log_activity(self, people, periods, make_evaluation):
        evaluation = make_evaluation(people['staff'], periods['p2'])
        EvaluationStore().log_activity(evaluation.id, 'NOTE', 'hello', metadata={'k': 1})
        log = EvaluationActivityLog.objects.get(evaluation=evaluation)
        assert (log.action, log.metadata) == ('NOTE', {'k': 1})

    def test_log_activity_failure_raises_persistence_error(self, people, periods, make_evaluation, monkeypatch):
        evaluation = make_evaluation(people['staff'], periods['p2'])

        def broken(*args, **kwargs):
            raise DatabaseError('disk full')

        monkeypatch.setattr(EvaluationActivityLog.objects, 'create', broken)
        with pytest.raises(PersistenceError):
            EvaluationStore().log_activity(evaluation.id, 'NOTE', 'hello')


@pytest.mark.django_db
class TestLoadEvaluationState:
    def test_items_in_template_order_with_stored_values(self, people, periods, items, make_evaluation):
        evaluation = make_evaluation(
            people['staff'], periods['p2'], grades={items[2]: ('B', 'solid'), items[0]: ('', 'draft note')},
        )
        state = load_evaluation_state(evaluation.id)
        assert [s.item_id for s in state.items] == [i.id for i in items]
        assert state.item(items[2].id).grade == 'B'
        assert state.item(items[2].id).score == 4
        assert state.item(items[0].id).comment == 'draft note'
        assert state.item(items[1].id).grade == ''
        assert state.evaluatee_name == 'Staff Tester'
        assert state.total_score() == 4

    def test_deleted_evaluatee_gets_placeholder(self, people, periods, make_evaluation):
        evaluation = make_evaluation(people['other'], periods['p2'])
        people['other'].soft_delete()
        state = load_evaluation_state(evaluation.id)
        assert state.evaluatee_name == 'Unknown employee'

    def test_removed_evaluatee_gets_placeholder(self, people, periods, make_evaluation):
        evaluation = make_evaluation(people['other'], periods['p2'])
        people['other'].delete()
        state = load_evaluation_state(evaluation.id)
        assert state.evaluatee_id is None
        assert state.evaluatee_name == 'Unknown employee'

    def test_period_without_template(self, people, periods, make_evaluation):
        period = periods['p2']
        period.template = None
        period.save()
        evaluation = make_evaluation(people['staff'], period)
        with pytest.raises(NotFoundError):
            load_evaluation_state(evaluation.id)

    def test_missing_template(self):
        with pytest.raises(NotFoundError):
            TemplateProvider().get_template_items(999)


class TestDisplayName:
    def test_none_employee(self):
        assert evaluatee_display_name(None) == 'Unknown employee'
