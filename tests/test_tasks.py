"""Tests for celery tasks and the assign_evaluations management command."""

import datetime

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from api.evaluation_assignment import EvaluationAssignmentManager
from api.evaluation_exceptions import NotFoundError, StageTransitionError
from api.evaluation_models import Evaluation, EvaluationActivityLog, EvaluationPeriod
from api.tasks import assign_period_evaluations, complete_finished_periods


@pytest.mark.django_db
class TestCompleteFinishedPeriods:
    def test_only_active_periods_past_end_date(self, template):
        finished = EvaluationPeriod.objects.create(
            name='Old', start_date=datetime.date(2020, 1, 1), end_date=datetime.date(2020, 6, 30),
            template=template, status='active',
        )
        running = EvaluationPeriod.objects.create(
            name='Current', start_date=datetime.date(2020, 1, 1), end_date=datetime.date(2999, 6, 30),
            template=template, status='active',
        )
        draft = EvaluationPeriod.objects.create(
            name='Draft', start_date=datetime.date(2020, 1, 1), end_date=datetime.date(2020, 6, 30),
            template=template, status='draft',
        )

        result = complete_finished_periods()
        assert result['success'] is True
        assert result['updated_count'] == 1
        statuses = dict(EvaluationPeriod.objects.filter(
            id__in=[finished.id, running.id, draft.id]
        ).values_list('id', 'status'))
        assert statuses == {finished.id: 'completed', running.id: 'active', draft.id: 'draft'}


@pytest.mark.django_db
class TestAssignment:
    def test_assign_creates_logs(self, people, periods):
        result = EvaluationAssignmentManager.assign(periods['p2'], stages=['self'])
        assert result['created'] == 5
        assert EvaluationActivityLog.objects.filter(action='ASSIGNED').count() == len(result['evaluation_ids'])

    def test_assign_skips_soft_deleted_employees(self, people, periods):
        people['other'].soft_delete()
        EvaluationAssignmentManager.assign(periods['p2'], stages=['final'])
        assert not Evaluation.objects.filter(evaluatee=people['other']).exists()

    def test_unknown_stage(self, periods):
        with pytest.raises(StageTransitionError):
            EvaluationAssignmentManager.assign(periods['p2'], stages=['ceo'])

    def test_unknown_employee(self, people, periods):
        with pytest.raises(NotFoundError):
            EvaluationAssignmentManager.assign(periods['p2'], evaluatee_ids=[people['staff'].id, 99999])

    def test_assign_task(self, people, periods):
        result = assign_period_evaluations(periods['p2'].id, evaluatee_ids=[people['staff'].id])
        assert result['success'] is True
        assert result['created'] == 4

    def test_assign_task_missing_period(self, db):
        assert assign_period_evaluations(424242)['success'] is False


@pytest.mark.django_db
class TestAssignCommand:
    def test_dry_run_saves_nothing(self, people, periods):
        call_command('assign_evaluations', '--period-id', str(periods['p2'].id), '--dry-run')
        assert not Evaluation.objects.filter(period=periods['p2']).exists()

    def test_command_assigns_requested_stages(self, people, periods):
        call_command(
            'assign_evaluations', '--period-id', str(periods['p2'].id),
            '--employee-id', str(people['staff'].id), '--stage', 'self', '--stage', 'manager',
        )
        stages = set(Evaluation.objects.filter(period=periods['p2']).values_list('stage', flat=True))
        assert stages == {'self', 'manager'}

    def test_missing_period(self, db):
        with pytest.raises(CommandError):
            call_command('assign_evaluations', '--period-id', '424242')
