"""
API Views Tests for Approval Workflow endpoints.
Covers templates, workflows, requests, actions, bulk actions and analytics.
"""

from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from core.approval.choices import ActionType, Role, TargetType
from core.approval.managers import TransitionEngine
from core.approval.models import ApprovalWorkflow, WorkflowTemplate
from core.base.test_utils import create_user, create_workflow


class ApprovalAPITestCase(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.creator = create_user(Role.CREATOR)
        self.reviewer = create_user(Role.REVIEWER)
        self.approver = create_user(Role.APPROVER)
        self.admin = create_user(Role.ADMIN)
        self.viewer = create_user(Role.VIEWER)
        self.template, self.workflow = create_workflow(
            [
                {'name': 'Review', 'approver_roles': ['reviewer']},
                {'name': 'Approval', 'approver_roles': ['approver']},
            ]
        )

    def login(self, user):
        self.client.force_authenticate(user=user)

    def open_request(self, target_id='post-1'):
        return TransitionEngine.create_request(
            self.workflow, TargetType.CONTENT, target_id, requested_by=self.creator
        )


class RequestAPITest(ApprovalAPITestCase):
    """Test /api/approval/requests/ endpoints."""

    def test_requires_authentication(self):
        response = self.client.get(reverse('approval:request-list'))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_create_request(self):
        self.login(self.creator)
        response = self.client.post(reverse('approval:request-list'), {
            'workflow': self.workflow.pk,
            'target_type': 'content',
            'target_id': 'post-1',
            'priority': 'high',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'pending')
        self.assertEqual(response.data['priority'], 'high')
        self.assertEqual(response.data['current_stage_indices'], [0])
        self.assertEqual(response.data['requested_by'], self.creator.pk)
        self.assertEqual(response.data['available_actions'], ['cancel', 'submit_for_review'])

    def test_create_duplicate_request(self):
        self.open_request()
        self.login(self.creator)
        response = self.client.post(reverse('approval:request-list'), {
            'workflow': self.workflow.pk,
            'target_type': 'content',
            'target_id': 'post-1',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['status'], 'error')
        self.assertEqual(response.data['data']['code'], 'ACTIVE_REQUEST_EXISTS')

    def test_create_request_role_check(self):
        for user in (self.viewer, self.reviewer):
            self.login(user)
            response = self.client.post(reverse('approval:request-list'), {
                'workflow': self.workflow.pk,
                'target_type': 'content',
                'target_id': 'post-1',
            }, format='json')
            self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_create_request_validation(self):
        self.login(self.creator)
        response = self.client.post(reverse('approval:request-list'), {
            'workflow': self.workflow.pk,
            'target_type': 'invoice',
            'target_id': 'x',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_and_filter(self):
        first = self.open_request('post-1')
        self.open_request('post-2')
        TransitionEngine.apply(first.pk, self.reviewer.pk, Role.REVIEWER, ActionType.APPROVE)

        self.login(self.viewer)
        response = self.client.get(reverse('approval:request-list'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['count'], 2)

        response = self.client.get(reverse('approval:request-list'), {'status': 'in_progress'})
        results = response.data['data']['results']
        self.assertEqual([r['id'] for r in results], [first.pk])

        response = self.client.get(reverse('approval:request-list'), {'overdue': 'true'})
        self.assertEqual(response.data['data']['count'], 0)

    def test_assigned_to_me(self):
        first = self.open_request('post-1')
        self.open_request('post-2')
        TransitionEngine.apply(first.pk, self.reviewer.pk, Role.REVIEWER, ActionType.APPROVE)

        self.login(self.approver)
        response = self.client.get(reverse('approval:request-list'), {'assigned_to_me': 'true'})
        self.assertEqual([r['id'] for r in response.data['data']['results']], [first.pk])

    def test_detail_hides_approvers_from_non_deciding_roles(self):
        request = self.open_request()
        url = reverse('approval:request-detail', args=[request.pk])

        self.login(self.viewer)
        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['stages']), 1)
        self.assertNotIn('assignments', response.data['stages'][0])
        self.assertEqual(response.data['available_actions'], [])

        self.login(self.reviewer)
        response = self.client.get(url)
        assignments = response.data['stages'][0]['assignments']
        self.assertEqual([a['approver'] for a in assignments], [self.reviewer.pk])
        self.assertIn('approve', response.data['available_actions'])

    def test_detail_not_found(self):
        self.login(self.viewer)
        response = self.client.get(reverse('approval:request-detail', args=[9999]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['data']['code'], 'NOT_FOUND')


class RequestActionAPITest(ApprovalAPITestCase):
    """Test POST /api/approval/requests/{id}/actions/."""

    def setUp(self):
        super().setUp()
        self.request = self.open_request()
        self.url = reverse('approval:request-actions', args=[self.request.pk])

    def test_approve(self):
        self.login(self.reviewer)
        response = self.client.post(self.url, {'action': 'approve', 'comment': 'Fine'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data['data']
        self.assertEqual(data['from_status'], 'pending')
        self.assertEqual(data['status'], 'in_progress')
        self.assertEqual(data['new_stage_indices'], [1])
        self.assertEqual(data['version'], 1)
        self.assertFalse(data['recorded_only'])

    def test_error_codes(self):
        self.login(self.approver)
        response = self.client.post(self.url, {'action': 'approve'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['data']['code'], 'NOT_ASSIGNED')

        self.login(self.viewer)
        response = self.client.post(self.url, {'action': 'approve'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['data']['code'], 'PERMISSION_DENIED')

        self.login(self.reviewer)
        response = self.client.post(self.url, {'action': 'approve', 'expected_version': 5}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['data']['code'], 'STATE_CONFLICT')

    def test_already_finalized(self):
        self.login(self.creator)
        self.client.post(self.url, {'action': 'cancel'}, format='json')
        response = self.client.post(self.url, {'action': 'cancel'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['data']['code'], 'ALREADY_FINALIZED')

    def test_unknown_action(self):
        self.login(self.reviewer)
        response = self.client.post(self.url, {'action': 'launch'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_history(self):
        self.login(self.reviewer)
        self.client.post(self.url, {'action': 'approve'}, format='json')
        self.login(self.approver)
        self.client.post(self.url, {'action': 'approve'}, format='json')

        response = self.client.get(reverse('approval:request-history', args=[self.request.pk]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        results = response.data['data']['results']
        self.assertEqual([r['action'] for r in results], ['approve', 'approve'])
        self.assertEqual(results[0]['actor_name'], self.reviewer.name)
        self.assertEqual(results[1]['to_status'], 'approved')

    def test_delegate(self):
        stand_in = create_user(Role.REVIEWER)
        self.login(self.reviewer)
        response = self.client.post(
            reverse('approval:request-delegate', args=[self.request.pk]),
            {'to_user': stand_in.pk, 'comment': 'Away'},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['action'], 'delegate')

        self.login(stand_in)
        response = self.client.post(self.url, {'action': 'approve'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)


class BulkActionAPITest(ApprovalAPITestCase):
    """Test POST /api/approval/requests/bulk-actions/."""

    def test_partial_success(self):
        requests = [self.open_request(f'post-{i}') for i in range(3)]
        TransitionEngine.apply(requests[0].pk, self.creator.pk, Role.CREATOR, ActionType.CANCEL)

        self.login(self.reviewer)
        response = self.client.post(reverse('approval:request-bulk-actions'), {
            'ids': [r.pk for r in requests],
            'action': 'approve',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        results = response.data['data']['results']
        self.assertEqual([r['success'] for r in results], [False, True, True])
        self.assertEqual(results[0]['error'], 'ALREADY_FINALIZED')
        self.assertEqual(response.data['data']['summary']['succeeded'], 2)
        self.assertEqual(response.data['message'], '2 of 3 succeeded')

    def test_requires_ids(self):
        self.login(self.reviewer)
        response = self.client.post(reverse('approval:request-bulk-actions'), {
            'ids': [],
            'action': 'approve',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class TemplateAPITest(ApprovalAPITestCase):
    """Test /api/approval/templates/ endpoints."""

    payload = {
        'code': 'blog-post',
        'name': 'Blog post review',
        'applicable_entity_types': ['content'],
        'default_timeout_hours': 24,
        'stages': [
            {'name': 'Review', 'approver_roles': ['reviewer']},
            {'name': 'Approval', 'approver_roles': ['approver'], 'escalation_role': 'admin'},
        ],
    }

    def test_list_templates(self):
        self.login(self.viewer)
        response = self.client.get(reverse('approval:template-list'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        results = response.data['data']['results']
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0]['stage_count'], 2)
        self.assertFalse(results[0]['is_locked'])

    def test_create_template(self):
        self.login(self.admin)
        response = self.client.post(reverse('approval:template-list'), self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['version'], 1)
        self.assertEqual([s['index'] for s in response.data['stages']], [0, 1])
        self.assertEqual(response.data['stages'][1]['escalation_role'], 'admin')
        template = WorkflowTemplate.objects.get(code='blog-post')
        self.assertEqual(template.created_by, self.admin)

    def test_create_template_admin_only(self):
        self.login(self.approver)
        response = self.client.post(reverse('approval:template-list'), self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(WorkflowTemplate.objects.filter(code='blog-post').exists())

    def test_create_invalid_template(self):
        self.login(self.admin)
        payload = {**self.payload, 'stages': [{'name': 'Review', 'approver_roles': []}]}
        response = self.client.post(reverse('approval:template-list'), payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['data']['code'], 'TEMPLATE_INVALID')
        self.assertEqual(response.data['data']['errors'], ['stage 0: approver_roles must not be empty'])

    def test_update_locked_template(self):
        self.open_request()
        self.login(self.admin)
        url = reverse('approval:template-detail', args=[self.template.pk])

        response = self.client.patch(url, {'description': 'Changed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['data']['code'], 'TEMPLATE_LOCKED')

        response = self.client.post(
            reverse('approval:template-new-version', args=[self.template.pk]),
            {'description': 'Changed'},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['version'], 2)
        self.assertEqual(response.data['description'], 'Changed')

    def test_update_unlocked_template(self):
        self.login(self.admin)
        response = self.client.patch(
            reverse('approval:template-detail', args=[self.template.pk]),
            {'auto_start': False},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['auto_start'])

    def test_activate_template(self):
        self.login(self.admin)
        response = self.client.post(
            reverse('approval:template-activate', args=[self.template.pk]),
            {'scope_type': 'brand', 'scope_id': '7'},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['scope_id'], '7')
        self.assertEqual(response.data['data']['template_version'], 1)

    def test_delete_template(self):
        self.login(self.admin)
        response = self.client.delete(reverse('approval:template-detail', args=[self.template.pk]))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        unused = WorkflowTemplate.objects.create(code='unused', name='Unused')
        response = self.client.delete(reverse('approval:template-detail', args=[unused.pk]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(WorkflowTemplate.objects.filter(pk=unused.pk).exists())


class WorkflowAPITest(ApprovalAPITestCase):
    """Test /api/approval/workflows/ endpoints."""

    def test_list_workflows(self):
        self.login(self.viewer)
        response = self.client.get(reverse('approval:workflow-list'), {'is_active': 'true'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['count'], 1)

    def test_deactivate_workflow(self):
        url = reverse('approval:workflow-detail', args=[self.workflow.pk])

        self.login(self.reviewer)
        response = self.client.patch(url, {'is_active': False}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.login(self.admin)
        response = self.client.patch(url, {'is_active': False}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(ApprovalWorkflow.objects.get(pk=self.workflow.pk).is_active)


class AnalyticsAPITest(ApprovalAPITestCase):

    def test_summary(self):
        request = self.open_request()
        TransitionEngine.apply(request.pk, self.reviewer.pk, Role.REVIEWER, ActionType.REJECT)

        self.login(self.viewer)
        response = self.client.get(reverse('approval:analytics-summary'), {'workflow': self.workflow.pk})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_requests'], 1)
        self.assertEqual(response.data['rejected_requests'], 1)

    def test_invalid_since(self):
        self.login(self.viewer)
        response = self.client.get(reverse('approval:analytics-summary'), {'since': 'yesterday'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
