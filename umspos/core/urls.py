from django.urls import path
from .views import (
    CustomTokenObtainPairView, CustomTokenRefreshView, signup, user_me,
    invitation_check, invitation_list_create,
    user_list_create, user_detail,
    audit_log_list, audit_log_detail,
)

urlpatterns = [
    # Auth endpoints
    path('auth/login/', CustomTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/refresh/', CustomTokenRefreshView.as_view(), name='token_refresh'),
    path('auth/signup/', signup, name='signup'),
    path('auth/me/', user_me, name='user-me'),

    # Invitation endpoints
    path('invitations/', invitation_list_create, name='invitation-list-create'),
    path('invitations/check/', invitation_check, name='invitation-check'),

    # User endpoints
    path('users/', user_list_create, name='user-list-create'),
    path('users/<int:pk>/', user_detail, name='user-detail'),

    # AuditLog endpoints
    path('audit-logs/', audit_log_list, name='audit-log-list'),
    path('audit-logs/<int:pk>/', audit_log_detail, name='audit-log-detail'),
]
