"""Task tracking module for gitops-deploy.

The manager starts its reconcile workers and resync timer through a
`TaskService` and cancels them all on close.
"""

from .service import TaskService, TaskServiceImpl

__all__ = ["TaskService", "TaskServiceImpl"]
