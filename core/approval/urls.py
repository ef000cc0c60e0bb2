"""
URL Configuration for Approval app.
Mounted under /api/approval/.
"""
from django.urls import path
from . import views

app_name = 'approval'

urlpatterns = [
    # Template endpoints
    path('templates/', views.template_list, name='template-list'),
    path('templates/<int:pk>/', views.template_detail, name='template-detail'),
    path('templates/<int:pk>/activate/', views.template_activate, name='template-activate'),
    path('templates/<int:pk>/new-version/', views.template_new_version, name='template-new-version'),

    # Workflow bindings
    path('workflows/', views.workflow_list, name='workflow-list'),
    path('workflows/<int:pk>/', views.workflow_detail, name='workflow-detail'),

    # Requests
    path('requests/', views.request_list, name='request-list'),
    path('requests/bulk-actions/', views.bulk_actions, name='request-bulk-actions'),
    path('requests/<int:pk>/', views.request_detail, name='request-detail'),
    path('requests/<int:pk>/history/', views.request_history, name='request-history'),
    path('requests/<int:pk>/actions/', views.request_action, name='request-actions'),
    path('requests/<int:pk>/delegate/', views.request_delegate, name='request-delegate'),

    # Analytics
    path('analytics/summary/', views.analytics_summary, name='analytics-summary'),
]
