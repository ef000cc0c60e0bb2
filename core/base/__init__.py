"""
Core Base Module

Shared abstract model mixins.

Exports:
    - AuditMixin: Adds created_at, updated_at, created_by

Usage:
    from core.base.models import AuditMixin

    class ApprovalWorkflow(AuditMixin):
        name = models.CharField(max_length=120)
"""
