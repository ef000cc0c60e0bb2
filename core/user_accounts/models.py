"""
User Account Models
Handles user authentication and the role each user holds in approval workflows.
"""
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager
from django.db import models

from core.approval.choices import Role


class CustomUserManager(BaseUserManager):
    """
    Custom user manager for CustomUser model.
    Handles user creation with a workflow role.
    """

    def create_user(self, email, name, password=None, role=Role.VIEWER, **extra_fields):
        """
        Create and save a user.

        Args:
            email: User's email address (used for authentication)
            name: User's full name
            password: User's password (will be hashed)
            role: Workflow role (viewer, creator, reviewer, approver, publisher, admin)
            **extra_fields: Additional fields to set on the user

        Returns:
            CustomUser: The created user instance
        """
        if not email:
            raise ValueError('Email is required')
        if not name:
            raise ValueError('Name is required')
        if role not in Role.values:
            raise ValueError(f'Unknown role: {role}')

        email = self.normalize_email(email)
        user = self.model(email=email, name=name, role=role, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, name, password=None, **extra_fields):
        """
        Create and save an admin with Django admin site access.
        Required by Django for the createsuperuser management command.
        """
        extra_fields.setdefault('is_staff', True)
        return self.create_user(
            email=email,
            name=name,
            password=password,
            role=Role.ADMIN,
            **extra_fields
        )


class CustomUser(AbstractBaseUser):
    """Custom user model with email authentication and a single workflow role"""
    email = models.EmailField(unique=True, db_index=True)
    name = models.CharField(max_length=255)
    role = models.CharField(
        max_length=20,
        choices=Role.choices,
        default=Role.VIEWER,
        db_index=True,
        help_text="Role used for approval permissions and stage assignment"
    )
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(
        default=False,
        help_text="Can log into the Django admin site"
    )
    date_joined = models.DateTimeField(auto_now_add=True)

    # Manager
    objects = CustomUserManager()

    # Django authentication settings
    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['name']

    class Meta:
        db_table = 'custom_users'
        verbose_name = 'User'
        verbose_name_plural = 'Users'

    def __str__(self):
        return f"{self.name} ({self.email})"

    def is_admin(self):
        """
        Check if user holds the admin role.

        Returns:
            bool: True if user is an admin, False otherwise
        """
        return self.role == Role.ADMIN

    # Django admin site hooks; access is all-or-nothing for staff.
    def has_perm(self, perm, obj=None):
        return self.is_active and self.is_staff

    def has_module_perms(self, app_label):
        return self.is_active and self.is_staff
