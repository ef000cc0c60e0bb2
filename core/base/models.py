from django.conf import settings
from django.db import models


class AuditMixin(models.Model):
    """
    Creation metadata for configuration records (templates, workflow bindings).

    Runtime approval history lives in ApprovalAction; this only answers who
    set a record up and when it last changed. ``created_by`` is filled in by
    TemplateStore and survives user deletion as NULL.
    """
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(app_label)s_%(class)s_created',
    )

    class Meta:
        abstract = True
