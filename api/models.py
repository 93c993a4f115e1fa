# api/models.py - Organization: departments and employees (identity side of the evaluation system)

from django.db import models
from django.contrib.auth.models import User
from django.utils import timezone
import logging

logger = logging.getLogger(__name__)


class ActiveManager(models.Manager):
    """Manager that excludes soft-deleted objects"""
    def get_queryset(self):
        return super().get_queryset().filter(is_deleted=False)


class AllObjectsManager(models.Manager):
    """Manager that includes soft-deleted objects"""
    def get_queryset(self):
        return super().get_queryset()


class SoftDeleteModel(models.Model):
    is_deleted = models.BooleanField(default=False, db_index=True)
    deleted_at = models.DateTimeField(null=True, blank=True)
    deleted_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='deleted_%(class)ss')

    objects = ActiveManager()  # Default manager excludes deleted
    all_objects = AllObjectsManager()  # Manager that includes deleted

    class Meta:
        abstract = True

    def soft_delete(self, user=None):
        """Soft delete the object"""
        self.is_deleted = True
        self.deleted_at = timezone.now()
        self.deleted_by = user
        self.save()

    def restore(self):
        """Restore a soft-deleted object"""
        self.is_deleted = False
        self.deleted_at = None
        self.deleted_by = None
        self.save()


class Department(SoftDeleteModel):
    """Store / office the employee belongs to"""
    name = models.CharField(max_length=100, unique=True)
    code = models.CharField(max_length=20, blank=True)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'departments'
        ordering = ['name']

    def __str__(self):
        return self.name


class Employee(SoftDeleteModel):
    ROLE_CHOICES = [
        ('admin', 'Administrator'),
        ('mg', 'Regional Supervisor (MG)'),
        ('manager', 'Manager'),
        ('staff', 'Staff'),
    ]

    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name='employee_profile',
        null=True,
        blank=True,
        help_text="Django user account used to sign in"
    )

    first_name = models.CharField(max_length=150)
    last_name = models.CharField(max_length=150, blank=True)
    full_name = models.CharField(max_length=300, editable=False, default='')
    email = models.CharField(max_length=254, blank=True)

    department = models.ForeignKey(
        Department, on_delete=models.PROTECT, related_name='employees',
        null=True, blank=True
    )
    position = models.CharField(max_length=200, blank=True)
    line_manager = models.ForeignKey(
        'self', on_delete=models.SET_NULL, null=True, blank=True,
        related_name='direct_reports', help_text="Line manager for this employee"
    )

    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='staff')
    managed_departments = models.ManyToManyField(
        Department, blank=True, related_name='managers',
        help_text="Departments whose evaluations this employee supervises"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'employees'
        ordering = ['department__name', 'last_name', 'first_name']

    def save(self, *args, **kwargs):
        self.full_name = f"{self.first_name} {self.last_name}".strip()
        super().save(*args, **kwargs)

    def __str__(self):
        return self.full_name or f"{self.first_name} {self.last_name}".strip()


# Evaluation domain models live in their own module; importing them here registers them with the app.
from .evaluation_models import *  # noqa: E402,F401,F403
