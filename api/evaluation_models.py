# api/evaluation_models.py - Templates, periods, evaluations and item scores

from django.db import models
from django.db.models import Sum
from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.utils import timezone
import logging

from .evaluation_grades import GRADE_KEYS, default_grade_scores

logger = logging.getLogger(__name__)

__all__ = [
    'EvaluationTemplate', 'EvaluationItem', 'EvaluationPeriod',
    'Evaluation', 'EvaluationScore', 'EvaluationActivityLog',
]


def default_enabled_grades():
    return list(GRADE_KEYS)


class EvaluationTemplate(models.Model):
    """Weighted rubric used by one or more evaluation periods"""
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'evaluation_templates'
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def total_weight(self):
        return self.items.aggregate(total=Sum('weight'))['total'] or 0


class EvaluationItem(models.Model):
    """Rubric line of a template"""
    template = models.ForeignKey(EvaluationTemplate, on_delete=models.CASCADE, related_name='items')

    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    weight = models.IntegerField(default=0, help_text="Points possible (informational only)")

    category = models.CharField(max_length=100, blank=True)
    subcategory = models.CharField(max_length=100, blank=True)

    grade_scores = models.JSONField(default=default_grade_scores, help_text="{grade: score}, e.g. {'A': 5, 'B': 4}")
    grade_criteria = models.JSONField(default=dict, blank=True, help_text="{grade: description}")
    enabled_grades = models.JSONField(default=default_enabled_grades)
    hide_criteria_from_self = models.BooleanField(
        default=False, help_text="Hide grade criteria from self and manager stage evaluators"
    )

    order_index = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'evaluation_items'
        ordering = ['template', 'order_index', 'id']

    def __str__(self):
        return f"{self.template.name} - {self.name}"

    def clean(self):
        if not self.enabled_grades:
            raise ValidationError({'enabled_grades': 'At least one grade must stay enabled'})
        unknown = [g for g in self.enabled_grades if g not in GRADE_KEYS]
        if unknown:
            raise ValidationError({'enabled_grades': f"Unknown grades: {', '.join(unknown)}"})
        unknown = [g for g in (self.grade_scores or {}) if g not in GRADE_KEYS]
        if unknown:
            raise ValidationError({'grade_scores': f"Unknown grades: {', '.join(unknown)}"})


class EvaluationPeriod(models.Model):
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('active', 'Active'),
        ('completed', 'Completed'),
    ]

    name = models.CharField(max_length=200, help_text="e.g., FY2024 H1")
    start_date = models.DateField()
    end_date = models.DateField()
    template = models.ForeignKey(
        EvaluationTemplate, on_delete=models.PROTECT, related_name='periods', null=True, blank=True
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='draft')

    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'evaluation_periods'
        ordering = ['-start_date']

    def __str__(self):
        return f"{self.name} ({self.start_date} - {self.end_date})"

    def clean(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValidationError({'end_date': 'End date must not be before start date'})

    def get_previous_period(self):
        """Period with the latest start date strictly before this one"""
        return EvaluationPeriod.objects.filter(
            start_date__lt=self.start_date
        ).order_by('-start_date', '-id').first()


class Evaluation(models.Model):
    STAGE_CHOICES = [
        ('self', 'Self Evaluation'),
        ('manager', 'Manager Evaluation'),
        ('mg', 'MG Evaluation'),
        ('final', 'Final Evaluation'),
    ]
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('in_progress', 'In Progress'),
        ('submitted', 'Submitted'),
    ]

    evaluatee = models.ForeignKey(
        'api.Employee', on_delete=models.SET_NULL, null=True, blank=True, related_name='evaluations'
    )
    period = models.ForeignKey(EvaluationPeriod, on_delete=models.CASCADE, related_name='evaluations')
    stage = models.CharField(max_length=20, choices=STAGE_CHOICES)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')

    overall_comment = models.TextField(blank=True)
    overall_grade = models.CharField(max_length=10, blank=True)
    final_decision = models.CharField(max_length=10, blank=True)

    evaluator = models.ForeignKey(
        'api.Employee', on_delete=models.SET_NULL, null=True, blank=True, related_name='given_evaluations'
    )
    submitted_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'evaluations'
        unique_together = ['evaluatee', 'period', 'stage']
        ordering = ['period', 'evaluatee', 'id']

    def __str__(self):
        name = self.evaluatee.full_name if self.evaluatee else 'N/A'
        return f"{name} - {self.period.name} ({self.stage})"

    @property
    def total_score(self):
        return float(self.scores.aggregate(total=Sum('score'))['total'] or 0)


class EvaluationScore(models.Model):
    """Persisted per-item state of one evaluation"""
    evaluation = models.ForeignKey(Evaluation, on_delete=models.CASCADE, related_name='scores')
    item = models.ForeignKey(EvaluationItem, on_delete=models.CASCADE, related_name='scores')

    grade = models.CharField(max_length=10, blank=True)
    score = models.FloatField(default=0)
    comment = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'evaluation_scores'
        unique_together = ['evaluation', 'item']
        ordering = ['item__order_index', 'item_id']

    def __str__(self):
        return f"{self.item.name}: {self.grade or '-'} ({self.score})"


class EvaluationActivityLog(models.Model):
    """Activity log for evaluation records"""
    evaluation = models.ForeignKey(Evaluation, on_delete=models.CASCADE, related_name='activity_logs')

    action = models.CharField(max_length=100)
    description = models.TextField()
    metadata = models.JSONField(default=dict, blank=True)

    performed_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'evaluation_activity_logs'
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.evaluation_id} - {self.action}"
