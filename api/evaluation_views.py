# api/evaluation_views.py - Templates, periods, evaluation taking, results and exports

from rest_framework import viewsets, status, filters
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django_filters import rest_framework as django_filters
from django_filters.rest_framework import DjangoFilterBackend
from django.http import HttpResponse
from django.utils import timezone
from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema
import logging

from .models import Department, Employee
from .evaluation_models import (
    EvaluationTemplate, EvaluationItem, EvaluationPeriod, Evaluation,
)
from .evaluation_serializers import (
    DepartmentSerializer, EmployeeSerializer,
    EvaluationTemplateSerializer, EvaluationItemSerializer, EvaluationPeriodSerializer,
    EvaluationListSerializer, EvaluationDetailSerializer, EvaluationActivityLogSerializer,
    GradeInputSerializer, HoldInputSerializer, CommentInputSerializer, OverallInputSerializer,
    SubmitInputSerializer, ToggleGradeSerializer, AssignInputSerializer,
    session_payload,
)
from .evaluation_exceptions import (
    EvaluationError, EvaluationValidationError, ConfirmationRequired, InvalidGradeError,
    NotFoundError, PersistenceError, StageTransitionError,
)
from .evaluation_grades import toggle_enabled_grade
from .evaluation_permissions import (
    admin_only, get_actor, get_evaluation_access, filter_evaluation_queryset,
    can_user_view_evaluation, can_user_edit_evaluation,
)
from .evaluation_assignment import EvaluationAssignmentManager
from .evaluation_references import ReferenceAggregator
from .evaluation_ranking import build_ranking, build_results, results_workbook
from .evaluation_pdf import (
    build_report_data, render_evaluation_report, render_multiple_reports, render_ranking_report,
)
from .evaluation_sessions import registry
from .evaluation_workflow import SubmissionWorkflow

logger = logging.getLogger(__name__)


def evaluation_error_response(exc):
    """Translate core errors into the API's {'error': ...} responses"""
    if isinstance(exc, ConfirmationRequired):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, (EvaluationValidationError, InvalidGradeError, StageTransitionError)):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, PersistenceError):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_400_BAD_REQUEST
    return Response(exc.to_dict(), status=code)


def pdf_response(pdf, filename):
    response = HttpResponse(pdf, content_type='application/pdf')
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


def safe_filename(text):
    return ''.join(c if c.isalnum() else '_' for c in text).strip('_') or 'report'


# ==================== ORGANIZATION ====================

class DepartmentViewSet(viewsets.ModelViewSet):
    """Departments - read for everyone, managed by admins"""
    queryset = Department.objects.all()
    serializer_class = DepartmentSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['is_active']
    search_fields = ['name', 'code']
    ordering_fields = ['name', 'created_at']

    @admin_only
    def create(self, request, *args, **kwargs):
        return super().create(request, *args, **kwargs)

    @admin_only
    def update(self, request, *args, **kwargs):
        return super().update(request, *args, **kwargs)

    @admin_only
    def destroy(self, request, *args, **kwargs):
        department = self.get_object()
        department.soft_delete(user=request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


class EmployeeViewSet(viewsets.ModelViewSet):
    """Employees (users of the evaluation system) - managed by admins"""
    queryset = Employee.objects.select_related('department', 'line_manager', 'user').prefetch_related(
        'managed_departments'
    )
    serializer_class = EmployeeSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['department', 'role']
    search_fields = ['first_name', 'last_name', 'full_name', 'email']
    ordering_fields = ['full_name', 'created_at']

    @admin_only
    def create(self, request, *args, **kwargs):
        return super().create(request, *args, **kwargs)

    @admin_only
    def update(self, request, *args, **kwargs):
        return super().update(request, *args, **kwargs)

    @admin_only
    def destroy(self, request, *args, **kwargs):
        employee = self.get_object()
        employee.soft_delete(user=request.user)
        logger.info(f"Employee {employee.id} soft-deleted by user {request.user.id}")
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=['get'])
    def me(self, request):
        """Current user's employee profile and evaluation role"""
        actor = get_actor(request.user)
        data = EmployeeSerializer(actor.employee).data if actor.employee else None
        return Response({
            'employee': data,
            'role': actor.role,
            'can_view_all': actor.can_view_all,
            'can_evaluate_others': actor.can_evaluate_others,
        })


# ==================== TEMPLATES ====================

class EvaluationTemplateViewSet(viewsets.ModelViewSet):
    """Evaluation templates - admin only for changes"""
    queryset = EvaluationTemplate.objects.prefetch_related('items')
    serializer_class = EvaluationTemplateSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter]
    filterset_fields = ['is_active']
    search_fields = ['name', 'description']

    @admin_only
    def create(self, request, *args, **kwargs):
        return super().create(request, *args, **kwargs)

    @admin_only
    def update(self, request, *args, **kwargs):
        return super().update(request, *args, **kwargs)

    @admin_only
    def destroy(self, request, *args, **kwargs):
        template = self.get_object()
        if template.periods.exists():
            return Response({
                'error': 'Template is used by evaluation periods',
                'periods': list(template.periods.values_list('name', flat=True))
            }, status=status.HTTP_400_BAD_REQUEST)
        return super().destroy(request, *args, **kwargs)

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user)


class EvaluationItemViewSet(viewsets.ModelViewSet):
    """Rubric items of a template"""
    queryset = EvaluationItem.objects.select_related('template')
    serializer_class = EvaluationItemSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['template', 'category']
    ordering_fields = ['order_index', 'name']

    @admin_only
    def create(self, request, *args, **kwargs):
        return super().create(request, *args, **kwargs)

    @admin_only
    def update(self, request, *args, **kwargs):
        return super().update(request, *args, **kwargs)

    @admin_only
    def destroy(self, request, *args, **kwargs):
        return super().destroy(request, *args, **kwargs)

    @swagger_auto_schema(request_body=ToggleGradeSerializer)
    @action(detail=True, methods=['post'])
    @admin_only
    def toggle_grade(self, request, pk=None):
        """Enable/disable one grade; the last enabled grade cannot be turned off"""
        item = self.get_object()
        serializer = ToggleGradeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        grade = serializer.validated_data['grade']
        before = list(item.enabled_grades)
        item.enabled_grades = toggle_enabled_grade(before, grade)
        changed = item.enabled_grades != before
        if changed:
            item.save(update_fields=['enabled_grades', 'updated_at'])

        return Response({
            'id': item.id,
            'enabled_grades': item.enabled_grades,
            'changed': changed,
        })


# ==================== PERIODS ====================

class EvaluationPeriodViewSet(viewsets.ModelViewSet):
    """Evaluation periods, assignment, ranking and period reports"""
    queryset = EvaluationPeriod.objects.select_related('template')
    serializer_class = EvaluationPeriodSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['status', 'template']
    ordering_fields = ['start_date', 'name']

    @admin_only
    def create(self, request, *args, **kwargs):
        return super().create(request, *args, **kwargs)

    @admin_only
    def update(self, request, *args, **kwargs):
        return super().update(request, *args, **kwargs)

    @admin_only
    def destroy(self, request, *args, **kwargs):
        return super().destroy(request, *args, **kwargs)

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user)

    @swagger_auto_schema(request_body=AssignInputSerializer)
    @action(detail=True, methods=['post'])
    @admin_only
    def assign(self, request, pk=None):
        """Create pending evaluations for active employees (idempotent)"""
        period = self.get_object()
        serializer = AssignInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if period.template_id is None:
            return Response({'error': 'Period has no evaluation template'}, status=status.HTTP_400_BAD_REQUEST)

        if data['run_async']:
            from .tasks import assign_period_evaluations
            task = assign_period_evaluations.delay(
                period.id, evaluatee_ids=data.get('evaluatee_ids'), stages=data.get('stages'),
                user_id=request.user.id,
            )
            return Response({'queued': True, 'task_id': task.id}, status=status.HTTP_202_ACCEPTED)

        try:
            result = EvaluationAssignmentManager.assign(
                period, evaluatee_ids=data.get('evaluatee_ids'), stages=data.get('stages'), user=request.user
            )
        except EvaluationError as e:
            return evaluation_error_response(e)

        return Response({
            'success': True,
            'message': f"{result['created']} evaluations assigned ({result['skipped']} already existed)",
            **result,
        }, status=status.HTTP_201_CREATED if result['created'] else status.HTTP_200_OK)

    @action(detail=True, methods=['get'])
    @admin_only
    def ranking(self, request, pk=None):
        period = self.get_object()
        return Response({
            'period': {'id': period.id, 'name': period.name},
            'rankings': build_ranking(period),
        })

    @action(detail=True, methods=['get'])
    @admin_only
    def ranking_pdf(self, request, pk=None):
        period = self.get_object()
        pdf = render_ranking_report(period, build_ranking(period))
        return pdf_response(pdf, f"ranking_{safe_filename(period.name)}.pdf")

    @swagger_auto_schema(manual_parameters=[
        openapi.Parameter('evaluatee', openapi.IN_QUERY, type=openapi.TYPE_INTEGER, description='Repeatable'),
    ])
    @action(detail=True, methods=['get'])
    def report_pdf(self, request, pk=None):
        """Summary report for every visible evaluatee of the period"""
        period = self.get_object()
        evaluations = filter_evaluation_queryset(
            request.user,
            Evaluation.objects.filter(period=period).select_related('evaluatee', 'evaluatee__department'),
        )
        evaluatee_ids = request.query_params.getlist('evaluatee')
        if evaluatee_ids:
            evaluations = evaluations.filter(evaluatee_id__in=evaluatee_ids)

        grouped = {}
        for evaluation in evaluations.order_by('evaluatee__full_name', 'evaluatee_id', 'id'):
            grouped.setdefault(evaluation.evaluatee_id, (evaluation.evaluatee, []))[1].append(evaluation)

        reports = [build_report_data(evaluatee, period, rows) for evaluatee, rows in grouped.values()]
        pdf = render_multiple_reports(reports)
        return pdf_response(pdf, f"evaluations_{safe_filename(period.name)}.pdf")


# ==================== EVALUATIONS ====================

class EvaluationFilter(django_filters.FilterSet):
    period = django_filters.NumberFilter(field_name='period_id')
    department = django_filters.NumberFilter(field_name='evaluatee__department_id')
    evaluatee = django_filters.NumberFilter(field_name='evaluatee_id')
    stage = django_filters.ChoiceFilter(choices=Evaluation.STAGE_CHOICES)
    status = django_filters.ChoiceFilter(choices=Evaluation.STATUS_CHOICES)

    class Meta:
        model = Evaluation
        fields = ['period', 'department', 'evaluatee', 'stage', 'status']


class EvaluationViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Role filtered evaluations plus the evaluation-taking session:
    open -> grade / hold / comment / overall -> save_draft | submit -> resubmit
    """
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_class = EvaluationFilter
    search_fields = ['evaluatee__full_name', 'period__name']
    ordering_fields = ['submitted_at', 'updated_at', 'stage']

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return EvaluationDetailSerializer
        return EvaluationListSerializer

    def get_queryset(self):
        queryset = Evaluation.objects.select_related(
            'evaluatee', 'evaluatee__department', 'period', 'evaluator'
        ).prefetch_related('scores__item')
        return filter_evaluation_queryset(self.request.user, queryset)

    # ---------- session helpers ----------

    def _editable_evaluation(self, request):
        evaluation = self.get_object()
        can_edit, reason = can_user_edit_evaluation(request.user, evaluation)
        if not can_edit:
            raise PermissionDenied(reason)
        return evaluation

    def _controller(self, request):
        evaluation = self._editable_evaluation(request)
        return registry.get(request.user, evaluation.id)

    def _session_response(self, request, controller, **extra):
        data = session_payload(controller)
        data.update(extra)
        return Response(data)

    # ---------- session lifecycle ----------

    @action(detail=True, methods=['post'])
    def open(self, request, pk=None):
        """Make this the user's current evaluation; pending saves of the previous one are dropped"""
        evaluation = self.get_object()
        can_view, reason = can_user_view_evaluation(request.user, evaluation)
        if not can_view:
            return Response({'error': 'No access', 'detail': reason}, status=status.HTTP_403_FORBIDDEN)
        can_edit, _ = can_user_edit_evaluation(request.user, evaluation)

        try:
            controller = registry.open(request.user, evaluation.id)
        except EvaluationError as e:
            return evaluation_error_response(e)
        return self._session_response(request, controller, can_edit=can_edit)

    @action(detail=True, methods=['post'])
    def close(self, request, pk=None):
        evaluation = self.get_object()
        current = registry.current(request.user)
        if current is not None and current.state.id == evaluation.id:
            discarded = current.pending_keys()
            registry.close(request.user)
            return Response({'closed': True, 'discarded_pending': [str(k) for k in discarded]})
        return Response({'closed': False})

    @action(detail=True, methods=['get'])
    def session(self, request, pk=None):
        evaluation = self.get_object()
        try:
            controller = registry.get(request.user, evaluation.id)
        except EvaluationError as e:
            return evaluation_error_response(e)
        return self._session_response(request, controller)

    # ---------- edits ----------

    @swagger_auto_schema(request_body=GradeInputSerializer)
    @action(detail=True, methods=['post'])
    def grade(self, request, pk=None):
        serializer = GradeInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            controller = self._controller(request)
            controller.set_grade(serializer.validated_data['item_id'], serializer.validated_data['grade'])
        except EvaluationError as e:
            return evaluation_error_response(e)
        return self._session_response(request, controller)

    @swagger_auto_schema(request_body=HoldInputSerializer)
    @action(detail=True, methods=['post'])
    def hold(self, request, pk=None):
        serializer = HoldInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            controller = self._controller(request)
            controller.toggle_hold(serializer.validated_data['item_id'])
        except EvaluationError as e:
            return evaluation_error_response(e)
        return self._session_response(request, controller)

    @swagger_auto_schema(request_body=CommentInputSerializer)
    @action(detail=True, methods=['post'])
    def comment(self, request, pk=None):
        serializer = CommentInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            controller = self._controller(request)
            controller.edit_comment(serializer.validated_data['item_id'], serializer.validated_data['comment'])
        except EvaluationError as e:
            return evaluation_error_response(e)
        return self._session_response(request, controller)

    @swagger_auto_schema(request_body=OverallInputSerializer)
    @action(detail=True, methods=['post'])
    def overall(self, request, pk=None):
        """Final stage only: overall comment (debounced), overall grade and final decision"""
        serializer = OverallInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            controller = self._controller(request)
            if 'overall_comment' in data:
                controller.edit_overall_comment(data['overall_comment'])
            if 'overall_grade' in data:
                controller.set_overall_grade(data['overall_grade'])
            if 'final_decision' in data:
                controller.set_final_decision(data['final_decision'])
        except EvaluationError as e:
            return evaluation_error_response(e)
        return self._session_response(request, controller)

    # ---------- workflow ----------

    @action(detail=True, methods=['post'])
    def save_draft(self, request, pk=None):
        """Best effort save of graded items; failures are reported per item"""
        try:
            controller = self._controller(request)
        except EvaluationError as e:
            return evaluation_error_response(e)

        result = SubmissionWorkflow(controller, actor=get_actor(request.user), user=request.user).save_draft()
        return Response({
            'success': result.ok,
            'message': f"Draft saved ({result.saved} items" + (
                f", {result.failed_count} failed)" if result.failed_count else ")"
            ),
            **result.to_dict(),
            'warnings': list(controller.warnings),
        }, status=status.HTTP_200_OK if result.ok else status.HTTP_207_MULTI_STATUS)

    def _finalize(self, request, resubmit):
        serializer = SubmitInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            evaluation = self._editable_evaluation(request)
            registry.submit(
                request.user, evaluation.id, actor=get_actor(request.user),
                confirmed=serializer.validated_data['confirmed'], resubmit=resubmit,
            )
        except EvaluationError as e:
            return evaluation_error_response(e)

        evaluation.refresh_from_db()
        return Response({
            'success': True,
            'message': 'Evaluation resubmitted' if resubmit else 'Evaluation submitted',
            'evaluation': EvaluationDetailSerializer(evaluation, context={'request': request}).data,
        })

    @swagger_auto_schema(request_body=SubmitInputSerializer)
    @action(detail=True, methods=['post'])
    def submit(self, request, pk=None):
        """
        Untouched items block (400). Comment-only and HOLD items need confirmed=true (409 otherwise).
        """
        return self._finalize(request, resubmit=False)

    @swagger_auto_schema(request_body=SubmitInputSerializer)
    @action(detail=True, methods=['post'])
    def resubmit(self, request, pk=None):
        return self._finalize(request, resubmit=True)

    # ---------- read side ----------

    @action(detail=True, methods=['get'])
    def references(self, request, pk=None):
        """Submitted earlier stages and the previous period's final, for comparison"""
        evaluation = self.get_object()
        references = ReferenceAggregator().load_references(
            evaluation.evaluatee_id, evaluation.period_id, evaluation.stage
        )
        return Response({
            'evaluation_id': evaluation.id,
            'stage': evaluation.stage,
            'references': [reference.to_dict() for reference in references],
        })

    @action(detail=True, methods=['get'])
    def activity_log(self, request, pk=None):
        evaluation = self.get_object()
        logs = evaluation.activity_logs.select_related('performed_by')
        return Response(EvaluationActivityLogSerializer(logs, many=True).data)

    @action(detail=True, methods=['get'])
    def export_pdf(self, request, pk=None):
        """Report of every visible stage of this evaluatee in this period"""
        evaluation = self.get_object()
        siblings = filter_evaluation_queryset(
            request.user,
            Evaluation.objects.filter(period=evaluation.period, evaluatee=evaluation.evaluatee)
            if evaluation.evaluatee_id else Evaluation.objects.filter(id=evaluation.id),
        )
        data = build_report_data(evaluation.evaluatee, evaluation.period, list(siblings))
        pdf = render_evaluation_report(data)
        stamp = timezone.now().strftime('%Y%m%d%H%M%S')
        return pdf_response(pdf, f"evaluation_{safe_filename(data['evaluatee'])}_{stamp}.pdf")

    @action(detail=False, methods=['get'])
    def results(self, request):
        queryset = self.filter_queryset(self.get_queryset())
        rows = build_results(queryset)
        access = get_evaluation_access(request.user)
        return Response({
            'count': len(rows),
            'can_view_all': access['can_view_all'],
            'results': rows,
        })

    @action(detail=False, methods=['get'])
    def results_excel(self, request):
        queryset = self.filter_queryset(self.get_queryset())
        content = results_workbook(build_results(queryset))
        response = HttpResponse(
            content,
            content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
        )
        stamp = timezone.now().strftime('%Y%m%d')
        response['Content-Disposition'] = f'attachment; filename="evaluation_results_{stamp}.xlsx"'
        return response
