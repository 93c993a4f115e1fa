import os
from celery import Celery
from celery.schedules import crontab

# Set default Django settings
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'hr_evaluation_backend.settings')

app = Celery('hr_evaluation_backend')

# Load config from Django settings with CELERY namespace
app.config_from_object('django.conf:settings', namespace='CELERY')

# Auto-discover tasks from all installed apps
app.autodiscover_tasks()

app.conf.beat_schedule = {
    # ==================== EVALUATION PERIODS ====================
    'complete-finished-periods-daily': {
        'task': 'api.tasks.complete_finished_periods',
        'schedule': crontab(hour=1, minute=0),
    },
}
