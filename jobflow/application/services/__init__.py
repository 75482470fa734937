"""
Application services for coordinating the job workflow.

Services orchestrate domain operations, serialize intents per job, commit
units of work and publish domain events once the commit succeeded.
"""

from .base_service import ApplicationServiceBase
from .confirmation_service import ConfirmationService
from .factory import Services, build_services, create_store
from .hourmeter_service import HourmeterService
from .job_service import JobLifecycleService
from .request_service import RequestService
from .sla_service import SLAQueryService

__all__ = [
    "ApplicationServiceBase",
    "ConfirmationService",
    "HourmeterService",
    "JobLifecycleService",
    "RequestService",
    "SLAQueryService",
    "Services",
    "build_services",
    "create_store",
]
