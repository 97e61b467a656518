"""Workflow services: the orchestration facade and the renewal worker."""

from hostplane.services.provisioning import ProvisioningService, StepResult, WorkflowResult
from hostplane.services.renewal_worker import RenewalWorker

__all__ = [
    "ProvisioningService",
    "RenewalWorker",
    "StepResult",
    "WorkflowResult",
]
