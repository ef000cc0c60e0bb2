"""
Authentication endpoints, mounted under /auth/.
Registration always yields a viewer; admins assign workflow roles through
/accounts/admin/users/.
"""
from django.urls import path
from rest_framework_simplejwt.views import TokenRefreshView
from . import views

app_name = 'auth'

urlpatterns = [
    # Registration and Login
    path('register/', views.register, name='register'),
    path('login/', views.login, name='login'),
    path('logout/', views.logout, name='logout'),

    # Password management
    path('change-password/', views.change_password, name='change_password'),

    # Token management
    path('token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
]
