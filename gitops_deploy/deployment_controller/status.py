"""Status conditions for GitOpsDeployment records."""

import dataclasses
import datetime

from gitops_deploy.manifest import (
    Condition,
    ConditionStatus,
    DeploymentStatus,
    READY_CONDITION,
    now as utc_now,
)

REASON_RECONCILED = "Reconciled"
REASON_CLONE_FAILED = "CloneFailed"
REASON_APPLY_FAILED = "ApplyFailed"
MESSAGE_RECONCILED = "Successfully applied manifests"


def update_status(
    status: DeploymentStatus,
    condition_status: ConditionStatus,
    reason: str,
    message: str,
    now: datetime.datetime | None = None,
) -> DeploymentStatus:
    """Return the status with its conditions replaced by a single Ready condition.

    Earlier conditions are dropped rather than merged. Nothing is written, the
    caller persists the returned status.
    """
    condition = Condition(
        type=READY_CONDITION,
        status=condition_status,
        reason=reason,
        message=message,
        last_transition_time=now or utc_now(),
    )
    return dataclasses.replace(status, conditions=[condition])
