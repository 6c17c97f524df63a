"""The deployment controller module.

This module runs reconcile cycles for GitOpsDeployment resources and owns
their status conditions.
"""

from .controller import ReconciliationController, ReconcileResult
from .status import update_status

__all__ = [
    "ReconciliationController",
    "ReconcileResult",
    "update_status",
]
