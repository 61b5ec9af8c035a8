from django.db import models
from umspos.core.models import User


class Notification(models.Model):
    """In-app notification shown to every user; read state is per user"""
    TYPE_CHOICES = [
        ('sale', 'Sale'),
        ('return', 'Return'),
        ('assignment', 'Assignment'),
        ('stock_alert', 'Stock Alert'),
        ('user', 'User'),
        ('system', 'System'),
    ]

    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    message = models.TextField()
    metadata = models.JSONField(default=dict, blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='notifications_created')
    created_at = models.DateTimeField(auto_now_add=True)
    read_by = models.ManyToManyField(User, related_name='notifications_read', blank=True)

    def __str__(self):
        return f"[{self.type}] {self.message[:50]}"

    class Meta:
        db_table = 'notifications'
        ordering = ['-id']
