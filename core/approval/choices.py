"""Closed enumerations shared by the approval engine.

Every enum is a Django ``TextChoices`` so it can back a model field
directly while engine code compares against members, never raw strings.
"""

from django.db import models


class Role(models.TextChoices):
    VIEWER = "viewer", "Viewer"
    CREATOR = "creator", "Creator"
    REVIEWER = "reviewer", "Reviewer"
    APPROVER = "approver", "Approver"
    PUBLISHER = "publisher", "Publisher"
    ADMIN = "admin", "Admin"


class TargetType(models.TextChoices):
    CAMPAIGN = "campaign", "Campaign"
    JOURNEY = "journey", "Journey"
    CONTENT = "content", "Content"
    BRAND = "brand", "Brand"


class RequestStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    IN_PROGRESS = "in_progress", "In Progress"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    CANCELLED = "cancelled", "Cancelled"
    EXPIRED = "expired", "Expired"
    ESCALATED = "escalated", "Escalated"


TERMINAL_STATUSES = frozenset({
    RequestStatus.APPROVED,
    RequestStatus.REJECTED,
    RequestStatus.CANCELLED,
    RequestStatus.EXPIRED,
})

OPEN_STATUSES = frozenset(set(RequestStatus) - TERMINAL_STATUSES)


class StageStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    ACTIVE = "active", "Active"
    ESCALATED = "escalated", "Escalated"
    COMPLETED = "completed", "Completed"
    REJECTED = "rejected", "Rejected"
    SKIPPED = "skipped", "Skipped"
    CANCELLED = "cancelled", "Cancelled"


# Stages that still accept decisions.
OPEN_STAGE_STATUSES = frozenset({StageStatus.ACTIVE, StageStatus.ESCALATED})

# Stages that count as satisfied when working out whether a step is done.
SATISFIED_STAGE_STATUSES = frozenset({StageStatus.COMPLETED, StageStatus.SKIPPED})


class AssignmentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    REVISION_REQUESTED = "revision_requested", "Revision Requested"
    DELEGATED = "delegated", "Delegated"
    REASSIGNED = "reassigned", "Reassigned"
    SUPERSEDED = "superseded", "Superseded"


class Priority(models.TextChoices):
    LOW = "low", "Low"
    MEDIUM = "medium", "Medium"
    HIGH = "high", "High"
    URGENT = "urgent", "Urgent"


PRIORITY_ORDER = (Priority.LOW, Priority.MEDIUM, Priority.HIGH, Priority.URGENT)


def raise_priority(priority):
    """Return the next priority level, capped at urgent."""
    position = PRIORITY_ORDER.index(Priority(priority))
    return PRIORITY_ORDER[min(position + 1, len(PRIORITY_ORDER) - 1)]


class ActionType(models.TextChoices):
    APPROVE = "approve", "Approve"
    REJECT = "reject", "Reject"
    REQUEST_REVISION = "request_revision", "Request Revision"
    SUBMIT_FOR_REVIEW = "submit_for_review", "Submit for Review"
    PUBLISH = "publish", "Publish"
    ESCALATE = "escalate", "Escalate"
    CANCEL = "cancel", "Cancel"
    DELEGATE = "delegate", "Delegate"
    EXPIRE = "expire", "Expire"


DECISION_ACTIONS = frozenset({
    ActionType.APPROVE,
    ActionType.REJECT,
    ActionType.REQUEST_REVISION,
})


class RejectionPolicy(models.TextChoices):
    REJECT = "reject", "Reject the request"
    REVISE = "revise", "Send back for revision"


class EntityState(models.TextChoices):
    """States the engine pushes to the external entity store."""
    DRAFT = "draft", "Draft"
    IN_REVIEW = "in_review", "In Review"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    PUBLISHED = "published", "Published"
