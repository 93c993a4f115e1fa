"""Tests for role based visibility and edit rights."""

import pytest
from django.contrib.auth.models import AnonymousUser, User

from api.evaluation_models import Evaluation
from api.evaluation_permissions import (
    can_user_edit_evaluation, can_user_view_evaluation, criteria_visible, filter_evaluation_queryset, get_actor,
)


@pytest.fixture
def evaluations(people, periods, make_evaluation):
    period = periods['p2']
    return {
        (name, stage): make_evaluation(people[name], period, stage=stage)
        for name in ('staff', 'other', 'manager')
        for stage in ('self', 'manager', 'mg', 'final')
    }


def visible_keys(user, evaluations):
    ids = set(filter_evaluation_queryset(user, Evaluation.objects.all()).values_list('id', flat=True))
    return {key for key, evaluation in evaluations.items() if evaluation.id in ids}


@pytest.mark.django_db
class TestActor:
    def test_anonymous_has_no_role(self):
        assert get_actor(AnonymousUser()).role == 'none'

    def test_superuser_without_profile_is_admin(self):
        user = User.objects.create_superuser(username='root', password='x', email='root@example.com')
        assert get_actor(user).is_admin

    def test_user_without_profile_has_no_access(self):
        user = User.objects.create_user(username='ghost', password='x')
        actor = get_actor(user)
        assert actor.role == 'none'
        assert not actor.can_view_all

    def test_manager_supervises_managed_departments(self, people, departments):
        people['manager'].managed_departments.add(departments['b'])
        actor = get_actor(people['manager'].user)
        assert actor.supervised_department_ids() == {departments['a'].id, departments['b'].id}


@pytest.mark.django_db
class TestVisibility:
    def test_admin_and_mg_see_everything(self, people, evaluations):
        assert visible_keys(people['admin'].user, evaluations) == set(evaluations)
        assert visible_keys(people['mg'].user, evaluations) == set(evaluations)

    def test_staff_sees_own_self_evaluation_only(self, people, evaluations):
        assert visible_keys(people['staff'].user, evaluations) == {('staff', 'self')}

    def test_manager_sees_own_department(self, people, evaluations):
        visible = visible_keys(people['manager'].user, evaluations)
        assert ('staff', 'mg') in visible
        assert ('manager', 'final') in visible
        assert not any(name == 'other' for name, _ in visible)

    def test_view_check_matches_filter(self, people, evaluations):
        user = people['staff'].user
        assert can_user_view_evaluation(user, evaluations[('staff', 'self')])[0]
        assert not can_user_view_evaluation(user, evaluations[('staff', 'manager')])[0]
        assert not can_user_view_evaluation(user, evaluations[('other', 'self')])[0]


@pytest.mark.django_db
class TestEditRights:
    def test_self_stage_belongs_to_evaluatee(self, people, evaluations):
        assert can_user_edit_evaluation(people['staff'].user, evaluations[('staff', 'self')])[0]
        assert not can_user_edit_evaluation(people['admin'].user, evaluations[('staff', 'self')])[0]

    def test_manager_stage(self, people, evaluations):
        manager = people['manager'].user
        assert can_user_edit_evaluation(manager, evaluations[('staff', 'manager')])[0]
        assert not can_user_edit_evaluation(manager, evaluations[('other', 'manager')])[0]
        assert not can_user_edit_evaluation(manager, evaluations[('manager', 'manager')])[0]
        assert not can_user_edit_evaluation(people['staff'].user, evaluations[('other', 'manager')])[0]

    def test_mg_and_final_reserved_for_mg_and_admin(self, people, evaluations):
        for stage in ('mg', 'final'):
            assert can_user_edit_evaluation(people['mg'].user, evaluations[('staff', stage)])[0]
            assert can_user_edit_evaluation(people['admin'].user, evaluations[('staff', stage)])[0]
            assert not can_user_edit_evaluation(people['manager'].user, evaluations[('staff', stage)])[0]


class TestCriteriaVisibility:
    def test_hidden_in_self_and_manager_stages(self):
        item = {'hide_criteria_from_self': True}
        assert not criteria_visible('self', item)
        assert not criteria_visible('manager', item)
        assert criteria_visible('mg', item)
        assert criteria_visible('final', item)

    def test_visible_when_not_flagged(self):
        assert criteria_visible('self', {'hide_criteria_from_self': False})
