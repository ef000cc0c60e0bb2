from django.apps import AppConfig


class ApprovalConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'core.approval'
    verbose_name = 'Approval Workflows'

    def ready(self):
        """Register signal handlers."""
        from django.test.signals import setting_changed

        from . import signals  # noqa: F401
        from .integrations import reset_collaborators

        def _reset_on_change(setting, **kwargs):
            if setting == 'APPROVAL_ENGINE':
                reset_collaborators()

        setting_changed.connect(_reset_on_change, weak=False, dispatch_uid='approval_engine_reset')
