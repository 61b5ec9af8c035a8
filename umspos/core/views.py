import logging
import secrets
from datetime import timedelta

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.exceptions import AuthenticationFailed, InvalidToken, TokenError
from django.conf import settings
from django.contrib.auth import authenticate, get_user_model
from django.core.exceptions import ObjectDoesNotExist
from django.db import transaction
from django.shortcuts import get_object_or_404
from django.utils import timezone

from .emails import build_signup_url, send_invitation_email, send_welcome_email
from .exceptions import EmailDeliveryError
from .models import UserInvitation, AuditLog
from .permissions import CREATE_USER, HasRolePermission, is_admin, permissions_for_user
from .serializers import (
    UserSerializer, UserCreateSerializer, SignupSerializer,
    InvitationSerializer, InvitationCreateSerializer, AuditLogSerializer
)
from .utils import create_audit_log, parse_date_param

User = get_user_model()

logger = logging.getLogger(__name__)


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    """Login with email and password"""
    username_field = 'email'

    def validate(self, attrs):
        email = attrs['email'].strip().lower()
        password = attrs['password']

        # The auth backend refuses inactive users outright, so check for a
        # deactivated account with a correct password first
        candidate = User.objects.filter(email__iexact=email).first()
        if candidate and not candidate.is_active and candidate.check_password(password):
            logger.warning(f"Login refused for deactivated account {email}")
            raise AuthenticationFailed('Your account has been deactivated.', 'ACCOUNT_DEACTIVATED')

        username = candidate.username if candidate else email
        self.user = authenticate(request=self.context.get('request'), username=username, password=password)
        if self.user is None:
            raise AuthenticationFailed(self.error_messages['no_active_account'], 'no_active_account')

        refresh = self.get_token(self.user)
        return {
            'refresh': str(refresh),
            'access': str(refresh.access_token),
            'user': UserSerializer(self.user).data,
        }

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['email'] = user.email
        token['role'] = user.role
        token['name'] = user.name
        return token


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Custom token refresh serializer that handles deleted users gracefully"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except ObjectDoesNotExist:
            # User referenced in token doesn't exist anymore
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    """Custom token refresh view that handles deleted users gracefully"""
    serializer_class = CustomTokenRefreshSerializer


def _tokens_for(user):
    token = CustomTokenObtainPairSerializer.get_token(user)
    return {'access': str(token.access_token), 'refresh': str(token)}


def _valid_invitation(token):
    if not token:
        return None
    return UserInvitation.objects.filter(
        token=token, is_used=False, expires_at__gt=timezone.now()
    ).first()


@api_view(['POST'])
@permission_classes([AllowAny])
def signup(request):
    """Create an account from an invitation token"""
    serializer = SignupSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    with transaction.atomic():
        invitation = UserInvitation.objects.select_for_update().filter(token=data['token']).first()
        if invitation is None:
            return Response({'error': 'Invalid invitation'}, status=status.HTTP_400_BAD_REQUEST)
        if invitation.is_used:
            return Response({'error': 'Invitation has already been used'}, status=status.HTTP_400_BAD_REQUEST)
        if invitation.expires_at <= timezone.now():
            return Response({'error': 'Invitation has expired'}, status=status.HTTP_400_BAD_REQUEST)
        if User.objects.filter(email__iexact=invitation.email).exists():
            return Response({'error': 'A user with this email already exists'}, status=status.HTTP_400_BAD_REQUEST)

        user = User(
            username=invitation.email,
            email=invitation.email,
            name=data['name'].strip(),
            role=invitation.role,
            is_active=True,
        )
        user.set_password(data['password'])
        user.save()

        invitation.is_used = True
        invitation.save(update_fields=['is_used'])

    logger.info(f"User {user.email} signed up with role {user.role}")
    create_audit_log(
        request=request, action='create', model_name='User', object_id=user.id,
        user=user, object_name=user.email, changes={'role': user.role, 'via': 'invitation'}
    )
    return Response({'user': UserSerializer(user).data, **_tokens_for(user)}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Get current user with role permissions"""
    user_data = UserSerializer(request.user).data
    user_data['permissions'] = permissions_for_user(request.user)
    user_data['is_admin'] = is_admin(request.user)
    return Response(user_data)


# Invitation views
@api_view(['GET'])
@permission_classes([AllowAny])
def invitation_check(request):
    """Return the invitation behind a signup token if it can still be used"""
    invitation = _valid_invitation(request.query_params.get('token', '').strip())
    if invitation is None:
        return Response({'error': 'Invalid or expired invitation'}, status=status.HTTP_404_NOT_FOUND)
    return Response(InvitationSerializer(invitation).data)


@api_view(['GET', 'POST', 'DELETE'])
@permission_classes([IsAuthenticated, HasRolePermission.require(CREATE_USER)])
def invitation_list_create(request):
    """List, create (or refresh) and revoke invitations"""
    if request.method == 'GET':
        invitations = UserInvitation.objects.select_related('invited_by').order_by('-invited_at')
        return Response(InvitationSerializer(invitations, many=True).data)

    if request.method == 'DELETE':
        email = request.query_params.get('email', '').strip().lower()
        if not email:
            return Response({'error': 'email is required'}, status=status.HTTP_400_BAD_REQUEST)
        deleted, _ = UserInvitation.objects.filter(email__iexact=email).delete()
        if not deleted:
            return Response({'error': 'Invitation not found'}, status=status.HTTP_404_NOT_FOUND)
        logger.info(f"Invitation for {email} revoked by {request.user.email}")
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = InvitationCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    email = serializer.validated_data['email']
    role = serializer.validated_data['role']
    now = timezone.now()
    invitation, created = UserInvitation.objects.update_or_create(
        email=email,
        defaults={
            'role': role,
            'token': secrets.token_urlsafe(32),
            'invited_by': request.user,
            'invited_at': now,
            'expires_at': now + timedelta(days=settings.INVITATION_TTL_DAYS),
            'is_used': False,
        },
    )

    try:
        send_invitation_email(email, role, build_signup_url(invitation.token))
    except EmailDeliveryError as e:
        return Response({'error': str(e)}, status=e.status_code)

    create_audit_log(
        request=request, action='invitation', model_name='UserInvitation',
        object_id=invitation.id, object_name=email, changes={'role': role, 'renewed': not created}
    )
    logger.info(f"Invitation sent to {email} as {role}")
    return Response(InvitationSerializer(invitation).data, status=status.HTTP_201_CREATED)


# User views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, HasRolePermission.require(CREATE_USER)])
def user_list_create(request):
    """List all users or create a new user"""
    if request.method == 'GET':
        users = User.objects.all().order_by('id')
        serializer = UserSerializer(users, many=True)
        return Response(serializer.data)
    else:
        serializer = UserCreateSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()
            create_audit_log(
                request=request, action='create', model_name='User', object_id=user.id,
                object_name=user.email, changes={'role': user.role}
            )
            try:
                send_welcome_email(user.email, user.name)
            except EmailDeliveryError as e:
                # The account exists either way
                logger.warning(f"Welcome email to {user.email} failed: {e}")
            return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, HasRolePermission.require(CREATE_USER)])
def user_detail(request, pk):
    """Retrieve, update or delete a user"""
    user = get_object_or_404(User, pk=pk)

    if request.method == 'GET':
        serializer = UserSerializer(user)
        return Response(serializer.data)
    elif request.method == 'PATCH':
        serializer = UserSerializer(user, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            create_audit_log(
                request=request, action='update', model_name='User', object_id=user.id,
                object_name=user.email, changes=dict(request.data)
            )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if user.pk == request.user.pk:
            return Response({'error': 'You cannot delete your own account'}, status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(
            request=request, action='delete', model_name='User', object_id=user.id, object_name=user.email
        )
        user.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# AuditLog views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_list(request):
    """List audit logs with filtering"""
    queryset = AuditLog.objects.select_related('user')

    # Filter by user if not admin
    if not is_admin(request.user):
        queryset = queryset.filter(user=request.user)

    action_filter = request.query_params.get('action', None)
    if action_filter:
        queryset = queryset.filter(action=action_filter)

    model_filter = request.query_params.get('model', None)
    if model_filter:
        queryset = queryset.filter(model_name=model_filter)

    try:
        date_from = parse_date_param(request.query_params.get('date_from'))
        date_to = parse_date_param(request.query_params.get('date_to'))
    except ValueError:
        return Response({'error': 'Invalid date format. Use YYYY-MM-DD'}, status=status.HTTP_400_BAD_REQUEST)
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    queryset = queryset.order_by('-created_at')
    serializer = AuditLogSerializer(queryset, many=True)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_detail(request, pk):
    """Retrieve an audit log"""
    audit_log = get_object_or_404(AuditLog, pk=pk)

    if not is_admin(request.user) and audit_log.user_id != request.user.id:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    serializer = AuditLogSerializer(audit_log)
    return Response(serializer.data)
