from django.contrib import admin
from .models import CustomUser


@admin.register(CustomUser)
class CustomUserAdmin(admin.ModelAdmin):
    """Admin configuration for CustomUser model"""
    list_display = ['email', 'name', 'role', 'is_active', 'is_staff']
    list_filter = ['role', 'is_active', 'is_staff']
    search_fields = ['email', 'name']
    readonly_fields = ['last_login', 'date_joined']

    fieldsets = (
        ('User Information', {
            'fields': ('email', 'name')
        }),
        ('Role & Access', {
            'fields': ('role', 'is_active', 'is_staff')
        }),
        ('Authentication', {
            'fields': ('password', 'last_login', 'date_joined')
        }),
    )

    def get_readonly_fields(self, request, obj=None):
        """Users cannot change their own role from the admin site"""
        readonly = list(self.readonly_fields)
        if obj and obj.pk == request.user.pk:
            readonly.append('role')
        return readonly
