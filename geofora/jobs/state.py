"""Forward-only status machines for export jobs, GDPR requests and breach reports."""

import enum

from geofora.exceptions import InvalidStatusTransitionError
from geofora.models.privacy import BreachStatus
from geofora.schemas.export import ExportStatus
from geofora.schemas.privacy import GDPRRequestStatus

EXPORT_TRANSITIONS: dict[enum.Enum, set[enum.Enum]] = {
    ExportStatus.PENDING: {ExportStatus.PROCESSING},
    ExportStatus.PROCESSING: {ExportStatus.COMPLETED, ExportStatus.FAILED},
    ExportStatus.COMPLETED: set(),
    ExportStatus.FAILED: set(),
}

GDPR_TRANSITIONS: dict[enum.Enum, set[enum.Enum]] = {
    GDPRRequestStatus.PENDING: {GDPRRequestStatus.PROCESSING},
    GDPRRequestStatus.PROCESSING: {GDPRRequestStatus.COMPLETED, GDPRRequestStatus.REJECTED},
    GDPRRequestStatus.COMPLETED: set(),
    GDPRRequestStatus.REJECTED: set(),
}

BREACH_TRANSITIONS: dict[enum.Enum, set[enum.Enum]] = {
    BreachStatus.INVESTIGATING: {BreachStatus.CONTAINED, BreachStatus.RESOLVED},
    BreachStatus.CONTAINED: {BreachStatus.RESOLVED},
    BreachStatus.RESOLVED: set(),
}


def is_terminal(status: enum.Enum, transitions: dict[enum.Enum, set[enum.Enum]]) -> bool:
    return not transitions[status]


def advance(job, target: enum.Enum, transitions: dict[enum.Enum, set[enum.Enum]], resource_type: str) -> None:
    """Move ``job.status`` to ``target`` or raise InvalidStatusTransitionError."""
    if target not in transitions[job.status]:
        raise InvalidStatusTransitionError(job.status.value, target.value, resource_type=resource_type)
    job.status = target
