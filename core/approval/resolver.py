"""Stage resolution.

Pure functions over ``TemplateDefinition`` and ``StageProgress`` snapshots.
Nothing here touches the database; the transition engine builds the
snapshots, calls :func:`resolve` and persists whatever it decides.

Topology:
    Stages are walked in ``index`` order. When the template allows parallel
    stages, consecutive stages sharing a ``parallel_group`` form one *step*
    that activates together and must fully complete before the workflow
    moves on. Every other stage is a step of its own.
"""

from .choices import OPEN_STAGE_STATUSES, RejectionPolicy, SATISFIED_STAGE_STATUSES
from .domain import Resolution


def build_steps(template):
    """Group stage indices into ordered activation steps."""
    steps = []
    previous_group = None
    for stage in sorted(template.stages, key=lambda s: s.index):
        group = stage.parallel_group if template.allow_parallel_stages else None
        if steps and group is not None and group == previous_group:
            steps[-1].append(stage.index)
        else:
            steps.append([stage.index])
        previous_group = group
    return [tuple(step) for step in steps]


def first_step(template):
    steps = build_steps(template)
    return steps[0] if steps else ()


def next_step(template, current):
    """Step following the one containing ``current`` indices, or ``None``."""
    steps = build_steps(template)
    current = set(current)
    for position, step in enumerate(steps):
        if current & set(step):
            if position + 1 < len(steps):
                return steps[position + 1]
            return None
    raise ValueError(f"Stage indices {sorted(current)} are not part of the template")


def step_of(template, index):
    for step in build_steps(template):
        if index in step:
            return step
    raise ValueError(f"Stage index {index} is not part of the template")


def quorum_met(definition, progress, require_all_default):
    """Whether the decisions on one stage satisfy its quorum rule."""
    if definition.effective_require_all(require_all_default):
        return progress.eligible > 0 and progress.approvals >= progress.eligible
    return progress.approvals >= 1


def resolve(template, progress):
    """Decide what the current decisions mean for the workflow.

    Args:
        template: ``TemplateDefinition``
        progress: iterable of ``StageProgress`` for the current cycle

    Returns:
        ``Resolution`` whose ``completed`` lists stages that became complete
        with these decisions and ``next_indices`` the step to activate.
    """
    by_index = {p.index: p for p in progress}

    current = None
    for step in build_steps(template):
        if not all(_satisfied(by_index.get(i)) for i in step):
            current = step
            break

    if current is None:
        return Resolution(Resolution.ALL_COMPLETE)

    for index in current:
        snapshot = by_index.get(index)
        if snapshot is None or snapshot.status not in OPEN_STAGE_STATUSES:
            continue
        if snapshot.revisions:
            return Resolution(Resolution.REVISION, rejected_index=index)
        if snapshot.rejections:
            kind = (
                Resolution.REVISION
                if template.rejection_policy == RejectionPolicy.REVISE
                else Resolution.REJECTED
            )
            return Resolution(kind, rejected_index=index)

    completed = []
    for index in current:
        snapshot = by_index.get(index)
        if snapshot is None or snapshot.status not in OPEN_STAGE_STATUSES:
            continue
        if quorum_met(template.stage(index), snapshot, template.require_all_approvers):
            completed.append(index)

    remaining = [
        i for i in current
        if i not in completed and not _satisfied(by_index.get(i))
    ]
    if remaining:
        return Resolution(Resolution.INCOMPLETE, completed=tuple(completed))

    following = next_step(template, current)
    if following is None:
        return Resolution(Resolution.ALL_COMPLETE, completed=tuple(completed))
    return Resolution(
        Resolution.STAGE_COMPLETE,
        completed=tuple(completed),
        next_indices=tuple(following),
    )


def _satisfied(snapshot):
    return snapshot is not None and snapshot.status in SATISFIED_STAGE_STATUSES
