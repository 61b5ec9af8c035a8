from rest_framework import serializers
from .models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    is_read = serializers.SerializerMethodField()
    created_by_name = serializers.SerializerMethodField()

    class Meta:
        model = Notification
        fields = ['id', 'type', 'message', 'metadata', 'created_by', 'created_by_name', 'created_at', 'is_read']

    def get_is_read(self, obj):
        read_ids = self.context.get('read_ids')
        if read_ids is not None:
            return obj.id in read_ids
        user = self.context.get('user')
        return bool(user) and obj.read_by.filter(pk=user.pk).exists()

    def get_created_by_name(self, obj):
        return obj.created_by.display_name if obj.created_by else None
