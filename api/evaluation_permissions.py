# api/evaluation_permissions.py - Role based access for evaluations (admin / mg / manager / staff)

from dataclasses import dataclass, field
from functools import wraps
from typing import Optional
from rest_framework.response import Response
from rest_framework import status
from django.db.models import Q
import logging

logger = logging.getLogger(__name__)

FULL_ACCESS_ROLES = ('admin', 'mg')
EVALUATOR_ROLES = ('admin', 'mg', 'manager')


@dataclass
class Actor:
    """Acting user as seen by the evaluation core"""
    user_id: Optional[int]
    employee_id: Optional[int]
    role: str
    department_id: Optional[int] = None
    managed_department_ids: set = field(default_factory=set)
    employee: Optional[object] = None

    @property
    def is_admin(self):
        return self.role == 'admin'

    @property
    def can_view_all(self):
        return self.role in FULL_ACCESS_ROLES

    @property
    def can_evaluate_others(self):
        return self.role in EVALUATOR_ROLES

    def supervised_department_ids(self):
        ids = set(self.managed_department_ids)
        if self.department_id:
            ids.add(self.department_id)
        return ids


def get_actor(user):
    """
    Resolve a Django user to an Actor.
    Superusers without an employee profile act as admin; other users without one get no access.
    """
    from .models import Employee

    if user is None or not user.is_authenticated:
        return Actor(user_id=None, employee_id=None, role='none')

    try:
        employee = Employee.objects.select_related('department').get(user=user, is_deleted=False)
    except Employee.DoesNotExist:
        if user.is_superuser:
            return Actor(user_id=user.id, employee_id=None, role='admin')
        return Actor(user_id=user.id, employee_id=None, role='none')

    role = 'admin' if user.is_superuser else employee.role
    return Actor(
        user_id=user.id,
        employee_id=employee.id,
        role=role,
        department_id=employee.department_id,
        managed_department_ids=set(employee.managed_departments.values_list('id', flat=True)),
        employee=employee,
    )


def is_admin_user(user):
    return get_actor(user).is_admin


def get_evaluation_access(user):
    """
    ✅ Evaluation access info
    Returns: {
        'actor': Actor,
        'can_view_all': bool,
        'is_admin': bool,
        'can_evaluate_others': bool,
        'department_ids': set or None (None means ALL),
    }
    """
    actor = get_actor(user)

    if actor.can_view_all:
        department_ids = None
    elif actor.role == 'manager':
        department_ids = actor.supervised_department_ids()
    else:
        department_ids = set()

    return {
        'actor': actor,
        'can_view_all': actor.can_view_all,
        'is_admin': actor.is_admin,
        'can_evaluate_others': actor.can_evaluate_others,
        'department_ids': department_ids,
    }


def filter_evaluation_queryset(user, queryset):
    """
    ✅ admin/mg: everything
    manager: evaluatees in own or managed departments
    staff: own self-stage evaluations only
    """
    access = get_evaluation_access(user)
    actor = access['actor']

    if access['can_view_all']:
        return queryset

    if actor.role == 'manager':
        return queryset.filter(
            Q(evaluatee__department_id__in=access['department_ids']) | Q(evaluatee_id=actor.employee_id)
        )

    if actor.role == 'staff' and actor.employee_id:
        return queryset.filter(evaluatee_id=actor.employee_id, stage='self')

    return queryset.none()


def can_user_view_evaluation(user, evaluation):
    """
    Returns: (can_view: bool, reason: str)
    """
    access = get_evaluation_access(user)
    actor = access['actor']

    if access['can_view_all']:
        return True, f"{actor.role.upper()} - Full Access"

    evaluatee = evaluation.evaluatee
    if actor.role == 'manager':
        if actor.employee_id and evaluation.evaluatee_id == actor.employee_id:
            return True, "Your evaluation"
        if evaluatee is not None and evaluatee.department_id in access['department_ids']:
            return True, f"Department member: {evaluatee.full_name}"

    if actor.role == 'staff' and actor.employee_id:
        if evaluation.evaluatee_id == actor.employee_id and evaluation.stage == 'self':
            return True, "Your self evaluation"

    return False, "No access to this evaluation"


def can_user_edit_evaluation(user, evaluation):
    """
    Edit rights by stage:
    self -> the evaluatee; manager -> manager/mg/admin who can see the evaluatee;
    mg and final -> mg or admin.
    Returns: (can_edit: bool, reason: str)
    """
    access = get_evaluation_access(user)
    actor = access['actor']

    if evaluation.stage == 'self':
        if actor.employee_id and evaluation.evaluatee_id == actor.employee_id:
            return True, "Your self evaluation"
        return False, "Only the evaluatee can fill in the self evaluation"

    if evaluation.stage == 'manager':
        if not actor.can_evaluate_others:
            return False, "Manager evaluations require the manager role"
        if actor.employee_id and evaluation.evaluatee_id == actor.employee_id and not actor.can_view_all:
            return False, "You cannot write your own manager evaluation"
        can_view, reason = can_user_view_evaluation(user, evaluation)
        if can_view:
            return True, reason
        return False, "Evaluatee is outside your departments"

    if evaluation.stage in ('mg', 'final'):
        if actor.can_view_all:
            return True, f"{actor.role.upper()} - {evaluation.stage} stage"
        return False, f"The {evaluation.stage} stage is reserved for MG and admin users"

    return False, "Unknown stage"


def criteria_visible(stage, item):
    """Grade criteria flagged hide_criteria_from_self are hidden in self and manager stages"""
    hidden = item.hide_criteria_from_self if hasattr(item, 'hide_criteria_from_self') else item.get(
        'hide_criteria_from_self', False
    )
    return not (hidden and stage in ('self', 'manager'))


# ============ DECORATOR FOR ADMIN-ONLY ACTIONS ============

def admin_only(view_func):
    """
    ✅ Decorator for admin-only endpoints
    Usage: @admin_only
    """
    @wraps(view_func)
    def wrapper(self_or_request, *args, **kwargs):
        if hasattr(self_or_request, 'request'):
            request = self_or_request.request
        else:
            request = self_or_request

        if is_admin_user(request.user):
            return view_func(self_or_request, *args, **kwargs)

        logger.warning(f"Admin-only action {view_func.__name__} denied for user {request.user.id}")
        return Response({
            'error': 'Admin access required',
            'detail': 'You must be an admin to access this resource'
        }, status=status.HTTP_403_FORBIDDEN)

    return wrapper
