# api/evaluation_serializers.py

from rest_framework import serializers
from django.contrib.auth.models import User

from .models import Department, Employee
from .evaluation_models import (
    EvaluationTemplate, EvaluationItem, EvaluationPeriod,
    Evaluation, EvaluationScore, EvaluationActivityLog,
)
from .evaluation_grades import GRADE_KEYS, HOLD, normalize_enabled_grades
from .evaluation_permissions import criteria_visible, get_actor
from .evaluation_state import STAGE_LABELS, STAGE_ORDER
from .evaluation_stores import evaluatee_department_name, evaluatee_display_name
from .evaluation_workflow import SubmissionWorkflow


GRADE_INPUT_CHOICES = [('', 'None')] + [(g, g) for g in GRADE_KEYS] + [(HOLD, 'Hold')]


# Organization Serializers
class DepartmentSerializer(serializers.ModelSerializer):
    employee_count = serializers.SerializerMethodField()

    class Meta:
        model = Department
        fields = ['id', 'name', 'code', 'is_active', 'employee_count', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def get_employee_count(self, obj):
        return obj.employees.filter(is_deleted=False).count()


class EmployeeSerializer(serializers.ModelSerializer):
    department_name = serializers.CharField(source='department.name', read_only=True)
    line_manager_name = serializers.CharField(source='line_manager.full_name', read_only=True)
    username = serializers.CharField(source='user.username', read_only=True)
    user = serializers.PrimaryKeyRelatedField(queryset=User.objects.all(), required=False, allow_null=True)
    managed_departments = serializers.PrimaryKeyRelatedField(
        queryset=Department.objects.all(), many=True, required=False
    )

    class Meta:
        model = Employee
        fields = [
            'id', 'user', 'username', 'first_name', 'last_name', 'full_name', 'email',
            'department', 'department_name', 'position',
            'line_manager', 'line_manager_name',
            'role', 'managed_departments',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['full_name', 'created_at', 'updated_at']


# Template Serializers
class EvaluationItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = EvaluationItem
        fields = [
            'id', 'template', 'name', 'description', 'weight',
            'category', 'subcategory',
            'grade_scores', 'grade_criteria', 'enabled_grades', 'hide_criteria_from_self',
            'order_index', 'created_at', 'updated_at'
        ]
        read_only_fields = ['created_at', 'updated_at']

    def to_representation(self, instance):
        """Flagged criteria are only shown to admin and mg; everyone else gets an empty mapping"""
        data = super().to_representation(instance)
        hidden = bool(instance.hide_criteria_from_self) and not self._can_view_hidden_criteria()
        if hidden:
            data['grade_criteria'] = {}
        data['criteria_hidden'] = hidden
        return data

    def _can_view_hidden_criteria(self):
        # context is shared with the parent template serializer, resolve the actor once
        if 'can_view_hidden_criteria' not in self.context:
            request = self.context.get('request')
            user = getattr(request, 'user', None)
            self.context['can_view_hidden_criteria'] = get_actor(user).can_view_all
        return self.context['can_view_hidden_criteria']

    def validate_enabled_grades(self, value):
        unknown = [g for g in value or [] if g not in GRADE_KEYS]
        if unknown:
            raise serializers.ValidationError(f"Unknown grades: {', '.join(map(str, unknown))}")
        value = normalize_enabled_grades(value)
        if not value:
            raise serializers.ValidationError('At least one grade must stay enabled')
        return value

    def validate_grade_scores(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError('Expected a mapping of grade to score')
        cleaned = {}
        for grade, score in value.items():
            if grade not in GRADE_KEYS:
                raise serializers.ValidationError(f"Unknown grade '{grade}'")
            try:
                cleaned[grade] = float(score)
            except (TypeError, ValueError):
                raise serializers.ValidationError(f"Score for grade '{grade}' must be a number")
        return cleaned

    def validate_grade_criteria(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError('Expected a mapping of grade to description')
        unknown = [g for g in value if g not in GRADE_KEYS]
        if unknown:
            raise serializers.ValidationError(f"Unknown grades: {', '.join(unknown)}")
        return value


class EvaluationTemplateSerializer(serializers.ModelSerializer):
    items = EvaluationItemSerializer(many=True, read_only=True)
    item_count = serializers.SerializerMethodField()
    total_weight = serializers.ReadOnlyField()
    created_by_name = serializers.CharField(source='created_by.get_full_name', read_only=True)

    class Meta:
        model = EvaluationTemplate
        fields = [
            'id', 'name', 'description', 'is_active',
            'items', 'item_count', 'total_weight',
            'created_by', 'created_by_name', 'created_at', 'updated_at'
        ]
        read_only_fields = ['created_by', 'created_at', 'updated_at']

    def get_item_count(self, obj):
        return obj.items.count()


# Period Serializers
class EvaluationPeriodSerializer(serializers.ModelSerializer):
    template_name = serializers.CharField(source='template.name', read_only=True)
    total_evaluations = serializers.SerializerMethodField()
    submitted_count = serializers.SerializerMethodField()

    class Meta:
        model = EvaluationPeriod
        fields = [
            'id', 'name', 'start_date', 'end_date', 'template', 'template_name', 'status',
            'total_evaluations', 'submitted_count',
            'created_by', 'created_at', 'updated_at'
        ]
        read_only_fields = ['created_by', 'created_at', 'updated_at']

    def validate(self, data):
        start_date = data.get('start_date', getattr(self.instance, 'start_date', None))
        end_date = data.get('end_date', getattr(self.instance, 'end_date', None))
        if start_date and end_date and start_date > end_date:
            raise serializers.ValidationError({'end_date': 'End date must not be before start date'})
        return data

    def get_total_evaluations(self, obj):
        return obj.evaluations.count()

    def get_submitted_count(self, obj):
        return obj.evaluations.filter(status='submitted').count()


# Evaluation Serializers
class EvaluationScoreSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='item.name', read_only=True)
    item_weight = serializers.IntegerField(source='item.weight', read_only=True)

    class Meta:
        model = EvaluationScore
        fields = ['id', 'item', 'item_name', 'item_weight', 'grade', 'score', 'comment', 'updated_at']


class EvaluationListSerializer(serializers.ModelSerializer):
    evaluatee_name = serializers.SerializerMethodField()
    department_name = serializers.SerializerMethodField()
    period_name = serializers.CharField(source='period.name', read_only=True)
    stage_label = serializers.SerializerMethodField()
    evaluator_name = serializers.CharField(source='evaluator.full_name', read_only=True)
    total_score = serializers.SerializerMethodField()

    class Meta:
        model = Evaluation
        fields = [
            'id', 'evaluatee', 'evaluatee_name', 'department_name',
            'period', 'period_name', 'stage', 'stage_label', 'status',
            'total_score', 'evaluator', 'evaluator_name', 'submitted_at', 'updated_at'
        ]

    def get_evaluatee_name(self, obj):
        return evaluatee_display_name(obj.evaluatee)

    def get_department_name(self, obj):
        return evaluatee_department_name(obj.evaluatee)

    def get_stage_label(self, obj):
        return STAGE_LABELS.get(obj.stage, obj.stage)

    def get_total_score(self, obj):
        annotated = getattr(obj, 'score_sum', None)
        value = annotated if annotated is not None else obj.total_score
        return round(float(value or 0), 1)


class EvaluationDetailSerializer(EvaluationListSerializer):
    scores = EvaluationScoreSerializer(many=True, read_only=True)

    class Meta(EvaluationListSerializer.Meta):
        fields = EvaluationListSerializer.Meta.fields + [
            'overall_comment', 'overall_grade', 'final_decision', 'scores', 'created_at'
        ]


class EvaluationActivityLogSerializer(serializers.ModelSerializer):
    performed_by_name = serializers.SerializerMethodField()

    class Meta:
        model = EvaluationActivityLog
        fields = ['id', 'action', 'description', 'metadata', 'performed_by', 'performed_by_name', 'created_at']

    def get_performed_by_name(self, obj):
        if obj.performed_by:
            return obj.performed_by.get_full_name() or obj.performed_by.username
        return None


# Input Serializers
class GradeInputSerializer(serializers.Serializer):
    item_id = serializers.IntegerField()
    grade = serializers.ChoiceField(choices=GRADE_INPUT_CHOICES, allow_blank=True)


class HoldInputSerializer(serializers.Serializer):
    item_id = serializers.IntegerField()


class CommentInputSerializer(serializers.Serializer):
    item_id = serializers.IntegerField()
    comment = serializers.CharField(allow_blank=True, trim_whitespace=False)


class OverallInputSerializer(serializers.Serializer):
    overall_comment = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    overall_grade = serializers.ChoiceField(choices=GRADE_INPUT_CHOICES, required=False, allow_blank=True)
    final_decision = serializers.ChoiceField(choices=GRADE_INPUT_CHOICES, required=False, allow_blank=True)

    def validate(self, data):
        if not data:
            raise serializers.ValidationError('Provide overall_comment, overall_grade or final_decision')
        return data


class SubmitInputSerializer(serializers.Serializer):
    confirmed = serializers.BooleanField(default=False)


class ToggleGradeSerializer(serializers.Serializer):
    grade = serializers.ChoiceField(choices=[(g, g) for g in GRADE_KEYS])


class AssignInputSerializer(serializers.Serializer):
    evaluatee_ids = serializers.ListField(child=serializers.IntegerField(), required=False, allow_empty=False)
    stages = serializers.ListField(
        child=serializers.ChoiceField(choices=[(s, s) for s in STAGE_ORDER]), required=False, allow_empty=False
    )
    run_async = serializers.BooleanField(default=False)


# Session payload (open evaluation)
def item_payload(item_state, stage):
    item = item_state.item
    return {
        'id': item.id,
        'name': item.name,
        'description': item.description,
        'weight': item.weight,
        'category': item.category,
        'subcategory': item.subcategory,
        'enabled_grades': list(item.enabled_grades),
        'grade_scores': dict(item.grade_scores),
        'grade_criteria': dict(item.grade_criteria) if criteria_visible(stage, item) else {},
        'criteria_hidden': not criteria_visible(stage, item),
        'grade': item_state.grade,
        'score': item_state.score,
        'comment': item_state.comment,
        'classification': item_state.classification,
    }


def session_payload(controller):
    state = controller.state
    check = SubmissionWorkflow(controller).check()
    return {
        'id': state.id,
        'evaluatee_id': state.evaluatee_id,
        'evaluatee_name': state.evaluatee_name,
        'period_id': state.period_id,
        'period_name': state.period_name,
        'stage': state.stage,
        'stage_label': STAGE_LABELS.get(state.stage, state.stage),
        'status': state.status,
        'overall_comment': state.overall_comment,
        'overall_grade': state.overall_grade,
        'final_decision': state.final_decision,
        'submitted_at': state.submitted_at,
        'total_score': state.display_total(),
        'completion_count': state.completion_count(),
        'item_count': len(state.items),
        'first_incomplete_index': state.find_first_incomplete(),
        'items': [item_payload(item_state, state.stage) for item_state in state.items],
        'pending_saves': [str(key) for key in controller.pending_keys()],
        'warnings': list(controller.warnings),
        'submission_check': check.to_dict(),
    }
