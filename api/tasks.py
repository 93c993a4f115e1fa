# api/tasks.py
from celery import shared_task
from django.utils import timezone
import logging
logger = logging.getLogger(__name__)

# ==================== EVALUATION PERIOD TASKS ====================

@shared_task(name='api.tasks.complete_finished_periods')
def complete_finished_periods():
    """Mark active periods whose end date has passed as completed"""
    from .evaluation_assignment import EvaluationAssignmentManager

    try:
        updated_count = EvaluationAssignmentManager.complete_finished_periods()
        return {
            'success': True,
            'updated_count': updated_count,
            'timestamp': timezone.now().isoformat()
        }

    except Exception as e:
        logger.error(f"💥 CRITICAL ERROR while completing finished periods: {str(e)}")
        return {
            'success': False,
            'error': str(e),
            'timestamp': timezone.now().isoformat()
        }


@shared_task(name='api.tasks.assign_period_evaluations')
def assign_period_evaluations(period_id, evaluatee_ids=None, stages=None, user_id=None):
    """Create pending evaluations for a period in the background"""
    from django.contrib.auth.models import User
    from .evaluation_assignment import EvaluationAssignmentManager
    from .evaluation_exceptions import EvaluationError
    from .evaluation_models import EvaluationPeriod

    try:
        period = EvaluationPeriod.objects.get(id=period_id)
    except EvaluationPeriod.DoesNotExist:
        logger.error(f"❌ Evaluation period {period_id} not found")
        return {'success': False, 'error': f'Period {period_id} not found'}

    user = User.objects.filter(id=user_id).first() if user_id else None

    try:
        result = EvaluationAssignmentManager.assign(
            period, evaluatee_ids=evaluatee_ids, stages=stages, user=user
        )
    except EvaluationError as e:
        logger.error(f"❌ Assignment for period {period_id} failed: {e.message}")
        return {'success': False, 'error': e.message}

    return {
        'success': True,
        'period_id': period_id,
        'created': result['created'],
        'skipped': result['skipped'],
        'timestamp': timezone.now().isoformat()
    }
