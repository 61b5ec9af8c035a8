from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Application user; email doubles as the login username"""
    ROLE_ADMIN = 'admin'
    ROLE_ACCOUNTANT = 'accountant'
    ROLE_USER = 'user'

    ROLE_CHOICES = [
        (ROLE_ADMIN, 'Admin'),
        (ROLE_ACCOUNTANT, 'Accountant'),
        (ROLE_USER, 'User'),
    ]

    name = models.CharField(max_length=150, blank=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_USER)
    phone = models.CharField(max_length=20, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def display_name(self):
        return self.name or self.email or self.username

    class Meta:
        db_table = 'users'


class UserInvitation(models.Model):
    """Pending invitation to sign up with a given role"""
    email = models.EmailField(unique=True)
    role = models.CharField(max_length=20, choices=User.ROLE_CHOICES, default=User.ROLE_USER)
    token = models.CharField(max_length=64, unique=True)
    invited_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='invitations_sent')
    invited_at = models.DateTimeField()
    expires_at = models.DateTimeField()
    is_used = models.BooleanField(default=False)

    def __str__(self):
        return self.email

    class Meta:
        db_table = 'user_invitations'


class AuditLog(models.Model):
    """Audit log for inventory movements and account changes"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('meter_add', 'Meters Added'),
        ('meter_remove', 'Meter Removed'),
        ('meter_assign', 'Meters Assigned To Agent'),
        ('agent_return', 'Meters Returned From Agent'),
        ('meter_sale', 'Meters Sold'),
        ('agent_sale', 'Agent Sale Recorded'),
        ('sold_return', 'Sold Meters Returned'),
        ('meter_replace', 'Meter Replaced'),
        ('faulty_status', 'Faulty Meter Status Changed'),
        ('meter_write_off', 'Meters Written Off'),
        ('invitation', 'User Invited'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., agent name, reference number)")
    object_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference identifier (e.g., sales reference, purchase batch number)")
    serial_numbers = models.TextField(blank=True, null=True, help_text="Comma-separated meter serial numbers touched by the action")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='audit_logs_created_b1a0f3_idx'),
            models.Index(fields=['action'], name='audit_logs_action_4c2e1d_idx'),
            models.Index(fields=['model_name'], name='audit_logs_model_n_7d9a2b_idx'),
            models.Index(fields=['object_reference'], name='audit_logs_object__e5f6a8_idx'),
        ]
