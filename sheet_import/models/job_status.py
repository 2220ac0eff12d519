from __future__ import annotations

from enum import Enum

"""Job lifecycle status.

State transitions: configuring → validating → (running →) finished.
A completed dry run may move finished → running when the real load is started.
"""

__all__ = [
    "JobStatus",
    "JobStateError",
    "ALLOWED_TRANSITIONS",
]


class JobStateError(Exception):
    """Raised on an illegal lifecycle transition (e.g. loading before validating)."""


class JobStatus(Enum):
    """Status of an ImportJob.

    - CONFIGURING: settings and mapping are being prepared
    - VALIDATING: the row validator runs over every raw record
    - RUNNING: batches are being written
    - FINISHED: a JobResult is available (success or failure)
    """
    CONFIGURING = "configuring"
    VALIDATING = "validating"
    RUNNING = "running"
    FINISHED = "finished"


ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.CONFIGURING: frozenset({JobStatus.VALIDATING}),
    JobStatus.VALIDATING: frozenset({JobStatus.RUNNING, JobStatus.FINISHED}),
    JobStatus.RUNNING: frozenset({JobStatus.FINISHED}),
    JobStatus.FINISHED: frozenset({JobStatus.RUNNING}),
}
