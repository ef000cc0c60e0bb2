"""Tests for template validation, versioning and activation."""

from django.test import TestCase

from core.approval.choices import Role, TargetType
from core.approval.exceptions import TemplateInvalid, TemplateLocked
from core.approval.managers import TransitionEngine
from core.approval.models import ApprovalWorkflow, WorkflowTemplate
from core.approval.templates import TemplateStore
from core.base.test_utils import create_user

TWO_STAGES = [
    {'name': 'Review', 'approver_roles': ['reviewer']},
    {'name': 'Approval', 'approver_roles': ['approver'], 'timeout_hours': 48},
]


class TopologyValidationTest(TestCase):
    """Test TemplateStore.topology_errors."""

    def errors(self, stages, **fields):
        return TemplateStore.topology_errors(fields, TemplateStore._normalise_stages(stages))

    def test_valid_template(self):
        self.assertEqual(self.errors(TWO_STAGES), [])

    def test_requires_a_stage(self):
        self.assertEqual(self.errors([]), ['template must define at least one stage'])

    def test_empty_approver_roles(self):
        errors = self.errors([{'name': 'Review', 'approver_roles': []}])
        self.assertIn('stage 0: approver_roles must not be empty', errors)

    def test_unknown_roles(self):
        errors = self.errors([
            {'name': 'Review', 'approver_roles': ['auditor'], 'escalation_role': 'boss'},
        ])
        self.assertIn("stage 0: unknown approver role 'auditor'", errors)
        self.assertIn("stage 0: unknown escalation role 'boss'", errors)

    def test_escalation_role_must_be_able_to_decide(self):
        for role in ('viewer', 'creator', 'publisher'):
            errors = self.errors([
                {'name': 'Review', 'approver_roles': ['reviewer'], 'escalation_role': role},
            ])
            self.assertEqual(errors, [f"stage 0: escalation role '{role}' cannot approve"])

        for role in ('reviewer', 'approver', 'admin'):
            errors = self.errors([
                {'name': 'Review', 'approver_roles': ['reviewer'], 'escalation_role': role},
            ])
            self.assertEqual(errors, [])

    def test_index_gaps(self):
        errors = self.errors([
            {'index': 0, 'name': 'A', 'approver_roles': ['reviewer']},
            {'index': 2, 'name': 'B', 'approver_roles': ['reviewer']},
        ])
        self.assertEqual(len(errors), 1)
        self.assertIn('without gaps', errors[0])

    def test_zero_timeout(self):
        errors = self.errors([{'name': 'A', 'approver_roles': ['reviewer'], 'timeout_hours': 0}])
        self.assertIn('stage 0: timeout_hours must be at least 1', errors)

    def test_parallel_group_requires_flag(self):
        stages = [
            {'name': 'A', 'approver_roles': ['reviewer'], 'parallel_group': 1},
            {'name': 'B', 'approver_roles': ['approver'], 'parallel_group': 1},
        ]
        self.assertEqual(len(self.errors(stages)), 2)
        self.assertEqual(self.errors(stages, allow_parallel_stages=True), [])

    def test_parallel_group_must_be_contiguous(self):
        stages = [
            {'name': 'A', 'approver_roles': ['reviewer'], 'parallel_group': 1},
            {'name': 'B', 'approver_roles': ['approver']},
            {'name': 'C', 'approver_roles': ['approver'], 'parallel_group': 1},
        ]
        errors = self.errors(stages, allow_parallel_stages=True)
        self.assertEqual(errors, ['stage 2: parallel group 1 is not contiguous'])

    def test_unknown_entity_type(self):
        errors = self.errors(TWO_STAGES, applicable_entity_types=['invoice'])
        self.assertEqual(errors, ["unknown entity type 'invoice'"])


class TemplateStoreTest(TestCase):
    """Test creating, versioning and activating templates."""

    def setUp(self):
        self.admin = create_user(Role.ADMIN)
        create_user(Role.REVIEWER)
        create_user(Role.APPROVER)
        self.template = TemplateStore.create_template(
            'blog-review', 'Blog review', TWO_STAGES,
            created_by=self.admin,
            applicable_entity_types=[TargetType.CONTENT],
        )

    def test_create_template(self):
        self.assertEqual(self.template.version, 1)
        self.assertEqual(self.template.stages.count(), 2)
        definition = self.template.to_definition()
        self.assertEqual(definition.stage(0).approver_roles, {Role.REVIEWER})
        self.assertEqual(definition.stage(1).timeout_hours, 48)
        self.assertEqual(definition.applicable_entity_types, {TargetType.CONTENT})

    def test_create_invalid_template(self):
        with self.assertRaises(TemplateInvalid) as ctx:
            TemplateStore.create_template('bad', 'Bad', [{'name': 'X', 'approver_roles': []}])
        self.assertEqual(ctx.exception.code, 'TEMPLATE_INVALID')
        self.assertEqual(len(ctx.exception.errors), 1)
        self.assertFalse(WorkflowTemplate.objects.filter(code='bad').exists())

    def test_create_rejects_publisher_escalation(self):
        stages = [{
            'name': 'Review',
            'approver_roles': ['reviewer'],
            'escalation_role': 'publisher',
            'timeout_hours': 1,
        }]
        with self.assertRaises(TemplateInvalid) as ctx:
            TemplateStore.create_template('stuck', 'Stuck', stages)
        self.assertEqual(ctx.exception.errors, ["stage 0: escalation role 'publisher' cannot approve"])

    def test_activation_rejects_malformed_template(self):
        template = TemplateStore.create_template(
            'unchecked', 'Unchecked', [{'name': 'X', 'approver_roles': []}], validate=False
        )
        with self.assertRaises(TemplateInvalid):
            TemplateStore.activate(template)
        self.assertFalse(ApprovalWorkflow.objects.filter(template=template).exists())

    def test_new_version(self):
        v2 = TemplateStore.new_version(self.template, name='Blog review v2')
        self.assertEqual(v2.code, 'blog-review')
        self.assertEqual(v2.version, 2)
        self.assertEqual(v2.stages.count(), 2)
        self.assertEqual(TemplateStore.latest('blog-review'), v2)
        # Original untouched
        self.template.refresh_from_db()
        self.assertEqual(self.template.name, 'Blog review')

    def test_update_unlocked_template(self):
        TemplateStore.update_template(
            self.template,
            stages=[{'name': 'Only', 'approver_roles': ['approver']}],
            description='Shorter',
        )
        self.template.refresh_from_db()
        self.assertEqual(self.template.description, 'Shorter')
        self.assertEqual(list(self.template.stages.values_list('name', flat=True)), ['Only'])

    def test_update_rejects_unknown_field(self):
        with self.assertRaises(TemplateInvalid):
            TemplateStore.update_template(self.template, usage_count=10)

    def test_template_locked_while_request_open(self):
        workflow = TemplateStore.activate(self.template)
        TransitionEngine.create_request(workflow, TargetType.CONTENT, 'post-1')

        self.assertTrue(self.template.is_locked())
        with self.assertRaises(TemplateLocked):
            TemplateStore.update_template(self.template, description='Changed')

        # Versioning is still possible
        v2 = TemplateStore.new_version(self.template, description='Changed')
        self.assertEqual(v2.description, 'Changed')

    def test_activate_and_find_workflow(self):
        workflow = TemplateStore.activate(self.template, scope_type='brand', scope_id=7)
        self.assertEqual(workflow.name, 'Blog review')
        self.assertEqual(workflow.scope_id, '7')

        self.assertEqual(TemplateStore.find_workflow(TargetType.CONTENT, 'brand', '7'), workflow)
        self.assertIsNone(TemplateStore.find_workflow(TargetType.CAMPAIGN, 'brand', '7'))

        TemplateStore.set_workflow_active(workflow, False)
        self.assertIsNone(TemplateStore.find_workflow(TargetType.CONTENT, 'brand', '7'))
