"""Shared pytest fixtures for the evaluation backend.

Provides:
- autouse: ManualScheduler instead of real timers, empty session registry
- ``departments``: two stores
- ``people``: one employee per role (admin, mg, manager, staff) plus a second staff member
- ``template`` / ``periods``: three-item rubric and three consecutive half-year periods
- ``make_evaluation``: evaluation factory
- ``api_client_for``: authenticated APIClient factory
"""

import datetime

import pytest
from django.contrib.auth.models import User
from rest_framework.test import APIClient

from api.evaluation_models import Evaluation, EvaluationItem, EvaluationPeriod, EvaluationScore, EvaluationTemplate
from api.evaluation_sessions import registry
from api.models import Department, Employee

SCORES = {'A': 5, 'B': 4, 'C': 3, 'D': 2, 'E': 1}


@pytest.fixture(autouse=True)
def manual_scheduler_settings(settings):
    settings.EVALUATION_SYSTEM_SETTINGS = {
        **settings.EVALUATION_SYSTEM_SETTINGS,
        'AUTOSAVE_SCHEDULER': 'tests.support.ManualScheduler',
        'AUTOSAVE_DEBOUNCE_SECONDS': 0.5,
    }


@pytest.fixture(autouse=True)
def clean_registry():
    registry.clear()
    yield
    registry.clear()


def make_employee(username, role, department, first_name=None, superuser=False):
    if superuser:
        user = User.objects.create_superuser(username=username, password='pass', email=f'{username}@example.com')
    else:
        user = User.objects.create_user(username=username, password='pass')
    return Employee.objects.create(
        user=user,
        first_name=first_name or username.capitalize(),
        last_name='Tester',
        department=department,
        role=role,
    )


@pytest.fixture
def departments(db):
    return {
        'a': Department.objects.create(name='Store A', code='A'),
        'b': Department.objects.create(name='Store B', code='B'),
    }


@pytest.fixture
def people(departments):
    admin = make_employee('admin', 'admin', departments['a'])
    mg = make_employee('mg', 'mg', departments['b'])
    manager = make_employee('manager', 'manager', departments['a'])
    staff = make_employee('staff', 'staff', departments['a'])
    other = make_employee('other', 'staff', departments['b'])
    return {'admin': admin, 'mg': mg, 'manager': manager, 'staff': staff, 'other': other}


@pytest.fixture
def template(db):
    template = EvaluationTemplate.objects.create(name='Store staff rubric')
    EvaluationItem.objects.create(
        template=template, name='Job performance', weight=30, grade_scores=dict(SCORES), order_index=1,
    )
    EvaluationItem.objects.create(
        template=template, name='Communication', weight=20, grade_scores=dict(SCORES), order_index=2,
        grade_criteria={'A': 'Explains clearly to every customer'}, hide_criteria_from_self=True,
    )
    EvaluationItem.objects.create(
        template=template, name='Goal achievement', weight=50, grade_scores=dict(SCORES), order_index=3,
    )
    return template


@pytest.fixture
def items(template):
    return list(template.items.order_by('order_index'))


@pytest.fixture
def periods(template):
    return {
        'p0': EvaluationPeriod.objects.create(
            name='FY2023 H2', start_date=datetime.date(2023, 10, 1), end_date=datetime.date(2024, 3, 31),
            template=template, status='completed',
        ),
        'p1': EvaluationPeriod.objects.create(
            name='FY2024 H1', start_date=datetime.date(2024, 4, 1), end_date=datetime.date(2024, 9, 30),
            template=template, status='completed',
        ),
        'p2': EvaluationPeriod.objects.create(
            name='FY2024 H2', start_date=datetime.date(2024, 10, 1), end_date=datetime.date(2025, 3, 31),
            template=template, status='active',
        ),
    }


@pytest.fixture
def make_evaluation():
    def factory(evaluatee, period, stage='self', status='pending', grades=None, **fields):
        evaluation = Evaluation.objects.create(
            evaluatee=evaluatee, period=period, stage=stage, status=status, **fields
        )
        for item, (grade, comment) in (grades or {}).items():
            EvaluationScore.objects.create(
                evaluation=evaluation, item=item, grade=grade,
                score=SCORES.get(grade, 0), comment=comment,
            )
        return evaluation
    return factory


@pytest.fixture
def api_client_for():
    def factory(employee_or_user):
        user = getattr(employee_or_user, 'user', employee_or_user)
        client = APIClient()
        client.force_authenticate(user=user)
        return client
    return factory
