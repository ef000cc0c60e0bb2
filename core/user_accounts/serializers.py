import re

from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers

from core.approval.choices import Role
from .models import CustomUser

PASSWORD_RULES = (
    (r'[A-Z]', "Password must contain at least one uppercase letter"),
    (r'[a-z]', "Password must contain at least one lowercase letter"),
    (r'\d', "Password must contain at least one number"),
)


def check_password_strength(value):
    """Character-class rules on top of Django's AUTH_PASSWORD_VALIDATORS"""
    for pattern, message in PASSWORD_RULES:
        if not re.search(pattern, value):
            raise serializers.ValidationError(message)
    validate_password(value)
    return value


class PasswordPairSerializer(serializers.Serializer):
    """Requires ``password`` and a matching ``confirm_password``"""
    password_field = 'password'

    confirm_password = serializers.CharField(write_only=True, style={'input_type': 'password'})

    def validate(self, attrs):
        if attrs[self.password_field] != attrs['confirm_password']:
            raise serializers.ValidationError({'confirm_password': "Passwords do not match"})
        attrs.pop('confirm_password')
        return attrs


class AccountCreationSerializer(PasswordPairSerializer, serializers.ModelSerializer):
    password = serializers.CharField(
        write_only=True,
        validators=[check_password_strength],
        style={'input_type': 'password'},
    )

    class Meta:
        model = CustomUser
        fields = ['email', 'name', 'password', 'confirm_password']

    def validate_email(self, value):
        if CustomUser.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("Email already registered")
        return value

    def create(self, validated_data):
        return CustomUser.objects.create_user(**validated_data)


class UserRegistrationSerializer(AccountCreationSerializer):
    """Public sign-up; the role is always viewer"""

    def create(self, validated_data):
        validated_data['role'] = Role.VIEWER
        return super().create(validated_data)


class AdminUserCreationSerializer(AccountCreationSerializer):
    role = serializers.ChoiceField(choices=Role.choices, default=Role.VIEWER)

    class Meta(AccountCreationSerializer.Meta):
        fields = AccountCreationSerializer.Meta.fields + ['role']


class AdminUserUpdateSerializer(serializers.ModelSerializer):

    class Meta:
        model = CustomUser
        fields = ['email', 'name', 'role', 'is_active']
        read_only_fields = ['email']

    def validate_role(self, value):
        request = self.context.get('request')
        # An admin demoting themselves could leave nobody able to manage users
        if request and self.instance and request.user.pk == self.instance.pk and value != Role.ADMIN:
            raise serializers.ValidationError("You cannot change your own role")
        return value


class UserListSerializer(serializers.ModelSerializer):
    role_display = serializers.CharField(source='get_role_display', read_only=True)

    class Meta:
        model = CustomUser
        fields = ['id', 'email', 'name', 'role', 'role_display', 'is_active', 'date_joined']
        read_only_fields = fields


class UserProfileSerializer(serializers.ModelSerializer):
    """The caller's own account; only ``name`` is writable"""

    class Meta:
        model = CustomUser
        fields = ['id', 'email', 'name', 'role']
        read_only_fields = ['id', 'role', 'email']


class ChangePasswordSerializer(PasswordPairSerializer):
    password_field = 'new_password'

    old_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(write_only=True, validators=[check_password_strength])

    def validate_old_password(self, value):
        if not self.context['user'].check_password(value):
            raise serializers.ValidationError("Old password is incorrect")
        return value
