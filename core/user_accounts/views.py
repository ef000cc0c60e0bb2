"""
Account and authentication endpoints.

Every user holds exactly one workflow role. Self-registration always yields a
viewer; admins promote users through /accounts/admin/users/. Users are
deactivated rather than deleted so the approval audit trail keeps its actors.
"""
import logging

from django.contrib.auth import authenticate
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken

from workflow_project.pagination import auto_paginate
from workflow_project.response_formatter import error_response, success_response

from .models import CustomUser
from .serializers import (
    AdminUserCreationSerializer,
    AdminUserUpdateSerializer,
    ChangePasswordSerializer,
    UserListSerializer,
    UserProfileSerializer,
    UserRegistrationSerializer,
)

logger = logging.getLogger(__name__)


def _session_payload(user):
    refresh = RefreshToken.for_user(user)
    return {
        'user': UserProfileSerializer(user).data,
        'tokens': {
            'refresh': str(refresh),
            'access': str(refresh.access_token),
        },
    }


def _admin_only(request):
    if not request.user.is_admin():
        return error_response('Admin role required', status_code=status.HTTP_403_FORBIDDEN)
    return None


# ============================================================================
# Authentication
# ============================================================================

@api_view(['POST'])
@permission_classes([AllowAny])
def register(request):
    """
    POST /auth/register/
    - Request body: { "email", "name", "password", "confirm_password" }
    - Returns: the new viewer account and a JWT pair
    """
    serializer = UserRegistrationSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    user = serializer.save()
    logger.info("Registered user %s", user.email)
    return success_response(
        data=_session_payload(user),
        message='User registered successfully',
        status_code=status.HTTP_201_CREATED,
    )


@api_view(['POST'])
@permission_classes([AllowAny])
def login(request):
    """
    POST /auth/login/
    - Request body: { "email", "password" }
    - Returns: the account (including its role) and a JWT pair
    """
    email = request.data.get('email')
    password = request.data.get('password')
    if not email or not password:
        return error_response('Please provide both email and password')

    user = authenticate(request, username=email, password=password)
    if user is None:
        logger.info("Failed login for %s", email)
        return error_response('Invalid credentials', status_code=status.HTTP_401_UNAUTHORIZED)

    return success_response(data=_session_payload(user), message='Login successful')


@api_view(['POST'])
def logout(request):
    """
    POST /auth/logout/ { "refresh" }
    Blacklists the refresh token; the access token expires on its own.
    """
    refresh_token = request.data.get('refresh')
    if not refresh_token:
        return error_response('Refresh token is required')

    try:
        RefreshToken(refresh_token).blacklist()
    except TokenError as e:
        return error_response(str(e))

    return success_response(message='Logout successful')


@api_view(['POST'])
def change_password(request):
    """POST /auth/change-password/ { "old_password", "new_password", "confirm_password" }"""
    serializer = ChangePasswordSerializer(data=request.data, context={'user': request.user})
    serializer.is_valid(raise_exception=True)

    request.user.set_password(serializer.validated_data['new_password'])
    request.user.save(update_fields=['password'])
    return success_response(message='Password changed successfully')


# ============================================================================
# Own profile
# ============================================================================

@api_view(['GET', 'PUT', 'PATCH'])
def user_profile(request):
    """
    GET /accounts/profile/
    PUT/PATCH /accounts/profile/ { "name" }

    Email and role are read-only here.
    """
    if request.method == 'GET':
        return Response(UserProfileSerializer(request.user).data, status=status.HTTP_200_OK)

    serializer = UserProfileSerializer(
        request.user,
        data=request.data,
        partial=request.method == 'PATCH',
    )
    serializer.is_valid(raise_exception=True)
    serializer.save()
    return success_response(data=serializer.data, message='Profile updated successfully')


# ============================================================================
# Admin user management
# ============================================================================

@api_view(['GET', 'POST'])
@auto_paginate
def admin_user_list(request):
    """
    GET /accounts/admin/users/
    - Query params: role, is_active (true/false), search (email or name)

    POST /accounts/admin/users/
    - Request body: { "email", "name", "password", "confirm_password", "role" }
    """
    denied = _admin_only(request)
    if denied:
        return denied

    if request.method == 'GET':
        users = CustomUser.objects.order_by('email')

        role = request.query_params.get('role')
        if role:
            users = users.filter(role=role)

        is_active = request.query_params.get('is_active')
        if is_active is not None:
            users = users.filter(is_active=is_active.lower() == 'true')

        search = request.query_params.get('search')
        if search:
            users = users.filter(email__icontains=search) | users.filter(name__icontains=search)

        return Response(UserListSerializer(users, many=True).data, status=status.HTTP_200_OK)

    serializer = AdminUserCreationSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    user = serializer.save()
    logger.info("Admin %s created user %s with role %s", request.user.email, user.email, user.role)
    return success_response(
        data=UserListSerializer(user).data,
        message='User created successfully',
        status_code=status.HTTP_201_CREATED,
    )


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
def admin_user_detail(request, user_id):
    """
    GET /accounts/admin/users/{id}/
    PUT/PATCH /accounts/admin/users/{id}/ { "name"?, "role"?, "is_active"? }
    DELETE /accounts/admin/users/{id}/ deactivates the account
    """
    denied = _admin_only(request)
    if denied:
        return denied

    target = get_object_or_404(CustomUser, pk=user_id)

    if request.method == 'GET':
        return Response(UserListSerializer(target).data, status=status.HTTP_200_OK)

    if request.method in ['PUT', 'PATCH']:
        serializer = AdminUserUpdateSerializer(
            target,
            data=request.data,
            partial=request.method == 'PATCH',
            context={'request': request},
        )
        serializer.is_valid(raise_exception=True)
        serializer.save()
        logger.info("Admin %s updated user %s", request.user.email, target.email)
        return success_response(data=UserListSerializer(target).data, message='User updated successfully')

    if target.pk == request.user.pk:
        return error_response('Cannot deactivate your own account', status_code=status.HTTP_403_FORBIDDEN)

    target.is_active = False
    target.save(update_fields=['is_active'])
    logger.info("Admin %s deactivated user %s", request.user.email, target.email)
    return success_response(message=f'User {target.email} deactivated')
