from rest_framework import serializers
from django.contrib.auth.password_validation import validate_password
from .models import User, UserInvitation, AuditLog


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'email', 'name', 'role', 'phone', 'is_active', 'is_superuser', 'created_at', 'updated_at']
        read_only_fields = ['email', 'is_superuser', 'created_at', 'updated_at']

    def to_representation(self, instance):
        data = super().to_representation(instance)
        if not data.get('name'):
            data['name'] = 'N/A'
        return data


class UserCreateSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, validators=[validate_password])
    email = serializers.EmailField()

    class Meta:
        model = User
        fields = ['email', 'password', 'name', 'role', 'phone']

    def validate_email(self, value):
        value = value.strip().lower()
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("A user with this email already exists")
        return value

    def create(self, validated_data):
        password = validated_data.pop('password')
        # Email doubles as the username used by the auth backend
        user = User(username=validated_data['email'], is_active=True, **validated_data)
        user.set_password(password)
        user.save()
        return user


class SignupSerializer(serializers.Serializer):
    token = serializers.CharField()
    password = serializers.CharField(write_only=True, validators=[validate_password])
    name = serializers.CharField(max_length=150)


class InvitationSerializer(serializers.ModelSerializer):
    invited_by_name = serializers.SerializerMethodField()

    class Meta:
        model = UserInvitation
        fields = ['id', 'email', 'role', 'invited_by', 'invited_by_name', 'invited_at', 'expires_at', 'is_used']
        read_only_fields = fields

    def get_invited_by_name(self, obj):
        return obj.invited_by.display_name if obj.invited_by else None


class InvitationCreateSerializer(serializers.Serializer):
    email = serializers.EmailField()
    role = serializers.ChoiceField(choices=User.ROLE_CHOICES, default=User.ROLE_USER)

    def validate_email(self, value):
        value = value.strip().lower()
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("A user with this email already exists")
        return value


class AuditLogSerializer(serializers.ModelSerializer):
    user_name = serializers.SerializerMethodField()

    class Meta:
        model = AuditLog
        fields = ['id', 'user', 'user_name', 'action', 'model_name', 'object_id', 'object_name',
                  'object_reference', 'serial_numbers', 'changes', 'ip_address', 'created_at']

    def get_user_name(self, obj):
        return obj.user.display_name if obj.user else None
