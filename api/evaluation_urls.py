# api/evaluation_urls.py

from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .evaluation_views import (
    DepartmentViewSet, EmployeeViewSet,
    EvaluationTemplateViewSet, EvaluationItemViewSet, EvaluationPeriodViewSet, EvaluationViewSet,
)

router = DefaultRouter()

router.register(r'evaluation/departments', DepartmentViewSet, basename='evaluation-department')
router.register(r'evaluation/employees', EmployeeViewSet, basename='evaluation-employee')
router.register(r'evaluation/templates', EvaluationTemplateViewSet, basename='evaluation-template')
router.register(r'evaluation/items', EvaluationItemViewSet, basename='evaluation-item')
router.register(r'evaluation/periods', EvaluationPeriodViewSet, basename='evaluation-period')
router.register(r'evaluation/evaluations', EvaluationViewSet, basename='evaluation')

urlpatterns = [
    path('', include(router.urls)),
]
