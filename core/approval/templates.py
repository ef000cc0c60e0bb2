"""Workflow template store.

Creates and versions templates, validates their stage topology and binds
them to scopes as ``ApprovalWorkflow`` rows. Topology problems are reported
here as ``TemplateInvalid``; the transition engine assumes a template it is
handed has already passed :meth:`TemplateStore.validate`.
"""

import logging

from django.db import transaction
from django.db.models import Max

from . import rbac
from .choices import RejectionPolicy, Role, TargetType
from .exceptions import NotFound, TemplateInvalid, TemplateLocked
from .models import ApprovalWorkflow, WorkflowStage, WorkflowTemplate

logger = logging.getLogger(__name__)

TEMPLATE_FIELDS = (
    "name",
    "description",
    "category",
    "organization",
    "applicable_entity_types",
    "allow_parallel_stages",
    "require_all_approvers",
    "default_timeout_hours",
    "auto_start",
    "rejection_policy",
    "is_public",
)

STAGE_FIELDS = (
    "name",
    "approver_roles",
    "require_all",
    "timeout_hours",
    "escalation_role",
    "parallel_group",
)


class TemplateStore:
    """Data access and validation for workflow templates."""

    # ----------------------
    # Validation
    # ----------------------

    @staticmethod
    def topology_errors(template_fields, stages):
        """Return a list of human-readable problems, empty when valid.

        Args:
            template_fields: dict of template attributes
            stages: list of stage dicts carrying an ``index`` key
        """
        errors = []
        roles = {r.value for r in Role}

        for entity_type in template_fields.get("applicable_entity_types") or []:
            if entity_type not in {t.value for t in TargetType}:
                errors.append(f"unknown entity type '{entity_type}'")

        policy = template_fields.get("rejection_policy", RejectionPolicy.REJECT)
        if policy not in {p.value for p in RejectionPolicy}:
            errors.append(f"unknown rejection policy '{policy}'")

        if not stages:
            errors.append("template must define at least one stage")
            return errors

        indices = sorted(s.get("index") for s in stages)
        if indices != list(range(len(stages))):
            errors.append(f"stage indices must be 0..{len(stages) - 1} without gaps, got {indices}")

        allow_parallel = template_fields.get("allow_parallel_stages", False)
        seen_groups = set()
        previous_group = None

        for stage in sorted(stages, key=lambda s: s.get("index") or 0):
            label = f"stage {stage.get('index')}"
            if not (stage.get("name") or "").strip():
                errors.append(f"{label}: name is required")

            approver_roles = stage.get("approver_roles") or []
            if not approver_roles:
                errors.append(f"{label}: approver_roles must not be empty")
            for role in approver_roles:
                if role not in roles:
                    errors.append(f"{label}: unknown approver role '{role}'")

            escalation_role = stage.get("escalation_role")
            if escalation_role and escalation_role not in roles:
                errors.append(f"{label}: unknown escalation role '{escalation_role}'")
            elif escalation_role and Role(escalation_role) not in rbac.DECIDING_ROLES:
                errors.append(f"{label}: escalation role '{escalation_role}' cannot approve")

            timeout = stage.get("timeout_hours")
            if timeout is not None and timeout < 1:
                errors.append(f"{label}: timeout_hours must be at least 1")

            group = stage.get("parallel_group")
            if group is not None:
                if not allow_parallel:
                    errors.append(f"{label}: parallel_group set but template disallows parallel stages")
                elif group in seen_groups and group != previous_group:
                    errors.append(f"{label}: parallel group {group} is not contiguous")
                seen_groups.add(group)
            previous_group = group

        return errors

    @classmethod
    def validate(cls, template):
        """Raise ``TemplateInvalid`` if a saved template is malformed."""
        fields = {name: getattr(template, name) for name in TEMPLATE_FIELDS}
        stages = [
            {"index": s.index, **{name: getattr(s, name) for name in STAGE_FIELDS}}
            for s in template.stages.all()
        ]
        errors = cls.topology_errors(fields, stages)
        if errors:
            raise TemplateInvalid(errors=errors, template=template.code)

    # ----------------------
    # Creation & versioning
    # ----------------------

    @staticmethod
    def _normalise_stages(stages):
        normalised = []
        for position, stage in enumerate(stages or []):
            data = {name: stage.get(name) for name in STAGE_FIELDS}
            data["index"] = stage.get("index", position)
            data["approver_roles"] = list(data["approver_roles"] or [])
            normalised.append(data)
        return normalised

    @classmethod
    def _write_stages(cls, template, stages):
        template.stages.all().delete()
        WorkflowStage.objects.bulk_create([
            WorkflowStage(template=template, **stage) for stage in stages
        ])

    @classmethod
    def create_template(cls, code, name, stages, created_by=None, validate=True, **fields):
        """Create version 1 of a template (or the next version of ``code``)."""
        stages = cls._normalise_stages(stages)
        fields["name"] = name
        if validate:
            errors = cls.topology_errors(fields, stages)
            if errors:
                raise TemplateInvalid(errors=errors, template=code)

        with transaction.atomic():
            latest = WorkflowTemplate.objects.filter(code=code).aggregate(v=Max("version"))["v"]
            template = WorkflowTemplate.objects.create(
                code=code,
                version=(latest or 0) + 1,
                created_by=created_by,
                **fields,
            )
            cls._write_stages(template, stages)

        logger.info("Created template %s v%s with %d stages", code, template.version, len(stages))
        return template

    @classmethod
    def update_template(cls, template, stages=None, **changes):
        """Edit a template in place; refused while a live request uses it."""
        if template.is_locked():
            raise TemplateLocked(template=template.code, version=template.version)

        for name, value in changes.items():
            if name not in TEMPLATE_FIELDS:
                raise TemplateInvalid(errors=[f"'{name}' is not an editable template field"])
            setattr(template, name, value)

        fields = {name: getattr(template, name) for name in TEMPLATE_FIELDS}
        if stages is not None:
            new_stages = cls._normalise_stages(stages)
        else:
            new_stages = [
                {"index": s.index, **{n: getattr(s, n) for n in STAGE_FIELDS}}
                for s in template.stages.all()
            ]
        errors = cls.topology_errors(fields, new_stages)
        if errors:
            raise TemplateInvalid(errors=errors, template=template.code)

        with transaction.atomic():
            template.save()
            if stages is not None:
                cls._write_stages(template, new_stages)
        return template

    @classmethod
    def new_version(cls, template, stages=None, created_by=None, **changes):
        """Copy ``template`` as the next version, applying ``changes``."""
        fields = {name: getattr(template, name) for name in TEMPLATE_FIELDS}
        fields.update(changes)
        if stages is None:
            stages = [
                {"index": s.index, **{n: getattr(s, n) for n in STAGE_FIELDS}}
                for s in template.stages.all()
            ]
        name = fields.pop("name")
        return cls.create_template(
            template.code, name, stages, created_by=created_by or template.created_by, **fields
        )

    @staticmethod
    def latest(code):
        template = WorkflowTemplate.objects.filter(code=code).order_by("-version").first()
        if template is None:
            raise NotFound(f"Template '{code}' not found", code=code)
        return template

    # ----------------------
    # Workflow bindings
    # ----------------------

    @classmethod
    def activate(cls, template, name=None, scope_type="", scope_id="", created_by=None):
        """Validate ``template`` and bind it to a scope.

        Raises:
            TemplateInvalid: malformed stage topology
        """
        cls.validate(template)
        workflow = ApprovalWorkflow.objects.create(
            template=template,
            name=name or template.name,
            scope_type=scope_type,
            scope_id=str(scope_id),
            is_active=True,
            created_by=created_by,
        )
        logger.info(
            "Activated template %s v%s as workflow #%s for %s:%s",
            template.code, template.version, workflow.pk, scope_type, scope_id,
        )
        return workflow

    @staticmethod
    def set_workflow_active(workflow, is_active):
        workflow.is_active = is_active
        workflow.save(update_fields=["is_active", "updated_at"])
        return workflow

    @staticmethod
    def find_workflow(target_type, scope_type="", scope_id=""):
        """Most recent active workflow for a scope whose template fits ``target_type``."""
        candidates = ApprovalWorkflow.objects.filter(
            is_active=True,
            scope_type=scope_type,
            scope_id=str(scope_id),
        ).select_related("template").order_by("-created_at", "-pk")
        for workflow in candidates:
            if workflow.template.applies_to(target_type):
                return workflow
        return None
