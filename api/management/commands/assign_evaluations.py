# api/management/commands/assign_evaluations.py
"""
Django management command to create pending evaluations for an evaluation period

Usage:
python manage.py assign_evaluations --period-id 3
python manage.py assign_evaluations --period-id 3 --stage self --stage manager
python manage.py assign_evaluations --period-id 3 --employee-id 12 --dry-run
"""

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
import logging

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Create pending evaluations for every active employee of an evaluation period'

    def add_arguments(self, parser):
        parser.add_argument(
            '--period-id',
            type=int,
            required=True,
            help='Evaluation period to assign',
        )

        parser.add_argument(
            '--employee-id',
            type=int,
            action='append',
            dest='employee_ids',
            help='Assign only for these employee IDs (repeatable)',
        )

        parser.add_argument(
            '--stage',
            action='append',
            dest='stages',
            choices=['self', 'manager', 'mg', 'final'],
            help='Stages to create (repeatable, default: all)',
        )

        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Test run without saving changes',
        )

    def handle(self, *args, **options):
        from api.evaluation_assignment import EvaluationAssignmentManager
        from api.evaluation_exceptions import EvaluationError
        from api.evaluation_models import EvaluationPeriod

        dry_run = options.get('dry_run', False)

        try:
            period = EvaluationPeriod.objects.get(id=options['period_id'])
        except EvaluationPeriod.DoesNotExist:
            raise CommandError(f"Evaluation period {options['period_id']} not found")

        self.stdout.write("=" * 80)
        if dry_run:
            self.stdout.write(self.style.WARNING("🔍 DRY RUN MODE - No changes will be saved"))
        else:
            self.stdout.write(self.style.SUCCESS("✅ LIVE MODE - Changes will be saved"))
        self.stdout.write("=" * 80)

        try:
            with transaction.atomic():
                result = EvaluationAssignmentManager.assign(
                    period,
                    evaluatee_ids=options.get('employee_ids'),
                    stages=options.get('stages'),
                )
                if dry_run:
                    transaction.set_rollback(True)
        except EvaluationError as e:
            raise CommandError(e.message)

        self.stdout.write(f"Period:  {period.name}")
        self.stdout.write(f"Created: {result['created']}")
        self.stdout.write(f"Skipped: {result['skipped']} (already assigned)")
        logger.info(f"assign_evaluations period={period.id} created={result['created']} dry_run={dry_run}")
