"""
Multi-stage approval workflow engine for Django

Usage:
    from core.approval.templates import TemplateStore
    from core.approval.managers import TransitionEngine

    template = TemplateStore.create_template(
        'blog-review', 'Blog review',
        [
            {'name': 'Editorial', 'approver_roles': ['reviewer']},
            {'name': 'Sign-off', 'approver_roles': ['approver']},
        ],
    )
    workflow = TemplateStore.activate(template)

    # Open a request for a target entity
    request = TransitionEngine.create_request(workflow, 'content', '42', requested_by=user)

    # Apply an action as an authenticated user
    TransitionEngine.apply(request.pk, user.pk, user.role, 'approve', comment='OK')

Overdue stages are escalated by ``python manage.py run_escalation_scheduler``.
"""

# Don't import models/managers at module level to avoid AppRegistryNotReady errors
# Import them directly from their modules when needed.

__version__ = '1.0.0'
