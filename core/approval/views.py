"""
API Views for the approval workflow engine.
Provides REST API endpoints for templates, workflows, requests, actions,
bulk actions and analytics.

Engine errors (ApprovalError subclasses) are not caught here; the project
exception handler turns them into standardized error responses with the
matching HTTP status.
"""
from django.db.models import ProtectedError, Q
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from workflow_project.pagination import auto_paginate
from workflow_project.response_formatter import error_response, success_response

from .analytics import approval_summary
from .bulk import BulkOperationCoordinator
from .choices import OPEN_STAGE_STATUSES, OPEN_STATUSES, Role
from .managers import TransitionEngine
from .models import ApprovalRequest, ApprovalWorkflow, WorkflowTemplate
from .serializers import (
    ActionSerializer,
    ActivateTemplateSerializer,
    ApprovalActionSerializer,
    ApprovalRequestCreateSerializer,
    ApprovalRequestDetailSerializer,
    ApprovalRequestListSerializer,
    ApprovalWorkflowSerializer,
    BulkActionSerializer,
    DelegateSerializer,
    WorkflowTemplateCreateUpdateSerializer,
    WorkflowTemplateListSerializer,
    WorkflowTemplateSerializer,
)
from .templates import TemplateStore


def _admin_required(request):
    if request.user.role != Role.ADMIN:
        return error_response(
            'Admin role required',
            data={'code': 'PERMISSION_DENIED'},
            status_code=status.HTTP_403_FORBIDDEN,
        )
    return None


# ============================================================================
# WorkflowTemplate API Views
# ============================================================================

@api_view(['GET', 'POST'])
@auto_paginate
def template_list(request):
    """
    List workflow templates or create a new one.

    GET /api/approval/templates/
    - Query params:
        - code: Filter by template code (exact match)
        - category: Filter by category
        - entity_type: Only templates applicable to this target type
        - latest: "true" to return only the newest version per code

    POST /api/approval/templates/
    - Request body: template fields with a nested "stages" array
    - Admin role only
    """
    if request.method == 'GET':
        templates = WorkflowTemplate.objects.all()

        code = request.query_params.get('code')
        if code:
            templates = templates.filter(code=code)

        category = request.query_params.get('category')
        if category:
            templates = templates.filter(category=category)

        templates = list(templates)

        entity_type = request.query_params.get('entity_type')
        if entity_type:
            templates = [t for t in templates if entity_type in (t.applicable_entity_types or []) or not t.applicable_entity_types]

        if request.query_params.get('latest', '').lower() == 'true':
            newest = {}
            for template in templates:
                if template.code not in newest or template.version > newest[template.code].version:
                    newest[template.code] = template
            templates = sorted(newest.values(), key=lambda t: t.code)

        serializer = WorkflowTemplateListSerializer(templates, many=True)
        return Response(serializer.data, status=status.HTTP_200_OK)

    denied = _admin_required(request)
    if denied:
        return denied

    serializer = WorkflowTemplateCreateUpdateSerializer(
        data=request.data,
        context={'user': request.user}
    )
    serializer.is_valid(raise_exception=True)
    template = serializer.save()
    return Response(WorkflowTemplateSerializer(template).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
def template_detail(request, pk):
    """
    Retrieve, update, or delete a workflow template.

    PUT/PATCH fail with TEMPLATE_LOCKED while a live request uses the
    template; create a new version instead. DELETE only succeeds for
    templates that were never activated.
    """
    template = get_object_or_404(WorkflowTemplate, pk=pk)

    if request.method == 'GET':
        return Response(WorkflowTemplateSerializer(template).data, status=status.HTTP_200_OK)

    denied = _admin_required(request)
    if denied:
        return denied

    if request.method in ['PUT', 'PATCH']:
        serializer = WorkflowTemplateCreateUpdateSerializer(
            template,
            data=request.data,
            partial=request.method == 'PATCH',
            context={'user': request.user}
        )
        serializer.is_valid(raise_exception=True)
        template = serializer.save()
        return Response(WorkflowTemplateSerializer(template).data, status=status.HTTP_200_OK)

    try:
        label = str(template)
        template.delete()
    except ProtectedError:
        return error_response(
            'Cannot delete a template that has been activated. Deactivate its workflows instead.',
            data={'code': 'TEMPLATE_LOCKED'},
            status_code=status.HTTP_409_CONFLICT,
        )
    return success_response(message=f'Workflow template "{label}" deleted successfully')


@api_view(['POST'])
def template_activate(request, pk):
    """
    Validate a template and bind it to a scope.

    POST /api/approval/templates/{id}/activate/
    - Request body: { "name"?, "scope_type"?, "scope_id"? }
    - Returns: the created workflow; TEMPLATE_INVALID on malformed topology
    """
    denied = _admin_required(request)
    if denied:
        return denied

    template = get_object_or_404(WorkflowTemplate, pk=pk)
    serializer = ActivateTemplateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    workflow = TemplateStore.activate(
        template,
        name=serializer.validated_data.get('name') or None,
        scope_type=serializer.validated_data['scope_type'],
        scope_id=serializer.validated_data['scope_id'],
        created_by=request.user,
    )
    return success_response(
        data=ApprovalWorkflowSerializer(workflow).data,
        message='Workflow activated',
        status_code=status.HTTP_201_CREATED,
    )


@api_view(['POST'])
def template_new_version(request, pk):
    """
    Copy a template as version + 1, applying any fields in the body.

    POST /api/approval/templates/{id}/new-version/
    """
    denied = _admin_required(request)
    if denied:
        return denied

    template = get_object_or_404(WorkflowTemplate, pk=pk)
    serializer = WorkflowTemplateCreateUpdateSerializer(template, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)

    changes = dict(serializer.validated_data)
    changes.pop('code', None)
    stages = changes.pop('stages', None)
    new_template = TemplateStore.new_version(
        template,
        stages=[dict(s) for s in stages] if stages is not None else None,
        created_by=request.user,
        **changes
    )
    return Response(WorkflowTemplateSerializer(new_template).data, status=status.HTTP_201_CREATED)


# ============================================================================
# ApprovalWorkflow API Views
# ============================================================================

@api_view(['GET'])
@auto_paginate
def workflow_list(request):
    """
    GET /api/approval/workflows/
    - Query params: scope_type, scope_id, is_active (true/false), template
    """
    workflows = ApprovalWorkflow.objects.select_related('template').order_by('-created_at')

    for param in ('scope_type', 'scope_id', 'template'):
        value = request.query_params.get(param)
        if value:
            workflows = workflows.filter(**{param: value})

    is_active = request.query_params.get('is_active')
    if is_active is not None:
        workflows = workflows.filter(is_active=is_active.lower() == 'true')

    return Response(ApprovalWorkflowSerializer(workflows, many=True).data, status=status.HTTP_200_OK)


@api_view(['GET', 'PATCH'])
def workflow_detail(request, pk):
    """
    GET /api/approval/workflows/{id}/
    PATCH /api/approval/workflows/{id}/ { "is_active"?, "name"? }
    """
    workflow = get_object_or_404(ApprovalWorkflow, pk=pk)

    if request.method == 'GET':
        return Response(ApprovalWorkflowSerializer(workflow).data, status=status.HTTP_200_OK)

    denied = _admin_required(request)
    if denied:
        return denied

    serializer = ApprovalWorkflowSerializer(workflow, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    serializer.save()
    return Response(serializer.data, status=status.HTTP_200_OK)


# ============================================================================
# ApprovalRequest API Views
# ============================================================================

@api_view(['GET', 'POST'])
@auto_paginate
def request_list(request):
    """
    List approval requests or open a new one.

    GET /api/approval/requests/
    - Query params:
        - status: Filter by request status
        - target_type / target_id: Filter by target
        - priority: Filter by priority
        - overdue: "true" for open requests past a stage or request deadline
        - assigned_to_me: "true" for requests waiting on the caller's decision

    POST /api/approval/requests/
    - Request body: { "workflow", "target_type", "target_id", "priority"?, "due_date"?, "notes"? }
    - Creator and admin roles only
    """
    if request.method == 'GET':
        requests = ApprovalRequest.objects.select_related('workflow').order_by('-created_at')

        for param in ('status', 'target_type', 'target_id', 'priority'):
            value = request.query_params.get(param)
            if value:
                requests = requests.filter(**{param: value})

        if request.query_params.get('overdue', '').lower() == 'true':
            now = timezone.now()
            requests = requests.filter(status__in=OPEN_STATUSES).filter(
                Q(due_date__lt=now)
                | Q(stage_instances__status__in=OPEN_STAGE_STATUSES, stage_instances__due_at__lt=now)
            ).distinct()

        if request.query_params.get('assigned_to_me', '').lower() == 'true':
            requests = requests.filter(
                pk__in=TransitionEngine.pending_for_user(request.user).values('pk')
            )

        serializer = ApprovalRequestListSerializer(requests, many=True)
        return Response(serializer.data, status=status.HTTP_200_OK)

    if request.user.role not in (Role.CREATOR, Role.ADMIN):
        return error_response(
            'Only creators and admins can open approval requests',
            data={'code': 'PERMISSION_DENIED'},
            status_code=status.HTTP_403_FORBIDDEN,
        )

    serializer = ApprovalRequestCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    approval_request = TransitionEngine.create_request(
        data['workflow'],
        data['target_type'],
        data['target_id'],
        requested_by=request.user,
        priority=data['priority'],
        due_date=data.get('due_date'),
        notes=data.get('notes', ''),
    )
    detail = ApprovalRequestDetailSerializer(approval_request, context={'role': request.user.role})
    return Response(detail.data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
def request_detail(request, pk):
    """
    GET /api/approval/requests/{id}/
    - Full request and current-cycle stage state. Approver identities and
      decisions are only included for roles that can decide.
    """
    approval_request = TransitionEngine.get_request(pk)
    serializer = ApprovalRequestDetailSerializer(approval_request, context={'role': request.user.role})
    return Response(serializer.data, status=status.HTTP_200_OK)


@api_view(['GET'])
@auto_paginate
def request_history(request, pk):
    """
    GET /api/approval/requests/{id}/history/
    - Audit trail, oldest first. Query param "action" filters by action type.
    """
    approval_request = TransitionEngine.get_request(pk)
    actions = approval_request.actions.select_related('actor')

    action = request.query_params.get('action')
    if action:
        actions = actions.filter(action=action)

    return Response(ApprovalActionSerializer(actions, many=True).data, status=status.HTTP_200_OK)


@api_view(['POST'])
def request_action(request, pk):
    """
    Apply an action to a request as the calling user.

    POST /api/approval/requests/{id}/actions/
    - Request body: { "action", "comment"?, "expected_version"? }
    - Returns: { request_id, action, from_status, status, new_stage_indices, recorded_only, version }
    """
    serializer = ActionSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    result = TransitionEngine.apply(
        pk,
        request.user.pk,
        request.user.role,
        data['action'],
        comment=data.get('comment'),
        expected_version=data.get('expected_version'),
    )
    message = 'Decision recorded for audit only' if result.recorded_only else ''
    return success_response(data=result.to_dict(), message=message)


@api_view(['POST'])
def request_delegate(request, pk):
    """
    POST /api/approval/requests/{id}/delegate/
    - Request body: { "to_user", "comment"?, "expected_version"? }
    """
    serializer = DelegateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    result = TransitionEngine.delegate(
        pk,
        request.user.pk,
        request.user.role,
        data['to_user'],
        comment=data.get('comment'),
        expected_version=data.get('expected_version'),
    )
    return success_response(data=result.to_dict(), message='Assignment delegated')


@api_view(['POST'])
def bulk_actions(request):
    """
    Apply one action to many requests.

    POST /api/approval/requests/bulk-actions/
    - Request body: { "ids": [...], "action", "comment"? }
    - Always 200; per-item results report success or the error code
    """
    serializer = BulkActionSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    results = BulkOperationCoordinator.apply_bulk(
        data['ids'],
        request.user.pk,
        request.user.role,
        data['action'],
        comment=data.get('comment'),
    )
    summary = BulkOperationCoordinator.summarize(results)
    return success_response(
        data={'results': [r.to_dict() for r in results], 'summary': summary},
        message=f"{summary['succeeded']} of {summary['total']} succeeded",
    )


# ============================================================================
# Analytics
# ============================================================================

@api_view(['GET'])
def analytics_summary(request):
    """
    GET /api/approval/analytics/summary/
    - Query params: workflow (id), since, until (ISO 8601 datetimes)
    """
    workflow = None
    workflow_id = request.query_params.get('workflow')
    if workflow_id:
        workflow = get_object_or_404(ApprovalWorkflow, pk=workflow_id)

    bounds = {}
    for param in ('since', 'until'):
        value = request.query_params.get(param)
        if value:
            parsed = parse_datetime(value)
            if parsed is None:
                return error_response(f'{param}: invalid datetime', status_code=status.HTTP_400_BAD_REQUEST)
            bounds[param] = parsed

    return Response(approval_summary(workflow=workflow, **bounds), status=status.HTTP_200_OK)
