"""
URL configuration for workflow_project.

    /admin/          Django admin site
    /auth/           register, login, logout, password, tokens
    /accounts/       profile and admin user management
    /api/approval/   approval workflow engine
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # Authentication endpoints (register, login, logout, password, tokens)
    path('auth/', include('core.user_accounts.auth_urls')),

    # Account management endpoints (profile, users, etc.)
    path('accounts/', include('core.user_accounts.urls')),

    # Approval workflows
    path('api/approval/', include('core.approval.urls')),
]
