"""Plain, typed views of template and stage data used by engine logic.

Models convert themselves into these dataclasses at the persistence
boundary, so the resolver and the RBAC gate never touch ORM objects or
raw JSON lists.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Tuple

from .choices import RejectionPolicy, Role, StageStatus, TargetType


@dataclass(frozen=True)
class StageDefinition:
    index: int
    name: str
    approver_roles: FrozenSet[Role] = frozenset()
    require_all: Optional[bool] = None
    timeout_hours: Optional[int] = None
    escalation_role: Optional[Role] = None
    parallel_group: Optional[int] = None

    def effective_require_all(self, template_default):
        return template_default if self.require_all is None else self.require_all

    def effective_timeout_hours(self, template_default):
        if self.timeout_hours:
            return self.timeout_hours
        return template_default or None


@dataclass(frozen=True)
class TemplateDefinition:
    code: str
    version: int
    stages: Tuple[StageDefinition, ...]
    applicable_entity_types: FrozenSet[TargetType] = frozenset()
    allow_parallel_stages: bool = False
    require_all_approvers: bool = False
    default_timeout_hours: int = 0
    auto_start: bool = True
    rejection_policy: RejectionPolicy = RejectionPolicy.REJECT

    def stage(self, index):
        for definition in self.stages:
            if definition.index == index:
                return definition
        raise KeyError(index)


@dataclass(frozen=True)
class StageProgress:
    """Snapshot of one stage instance's decisions in the current cycle."""

    index: int
    status: StageStatus
    eligible: int = 0
    approvals: int = 0
    rejections: int = 0
    revisions: int = 0


@dataclass(frozen=True)
class Resolution:
    INCOMPLETE = "incomplete"
    STAGE_COMPLETE = "stage_complete"
    ALL_COMPLETE = "all_complete"
    REJECTED = "rejected"
    REVISION = "revision"

    kind: str
    completed: Tuple[int, ...] = ()
    next_indices: Tuple[int, ...] = ()
    rejected_index: Optional[int] = None

    @property
    def is_terminal(self):
        return self.kind in (self.ALL_COMPLETE, self.REJECTED)


@dataclass(frozen=True)
class TransitionResult:
    request_id: int
    action: str
    from_status: str
    to_status: str
    stage_indices: Tuple[int, ...] = ()
    recorded_only: bool = False
    version: int = 0
    completed_stages: Tuple[int, ...] = field(default=())

    def to_dict(self):
        return {
            "request_id": self.request_id,
            "action": str(self.action),
            "from_status": str(self.from_status),
            "status": str(self.to_status),
            "new_stage_indices": list(self.stage_indices),
            "recorded_only": self.recorded_only,
            "version": self.version,
        }
