"""Host lifecycle states."""

from enum import Enum
from typing import Optional


class HostPhase(Enum):
    """Host lifecycle state as seen by docker-machine."""

    ABSENT = "Absent"
    STARTING = "Starting"
    RUNNING = "Running"
    STOPPED = "Stopped"

    @classmethod
    def from_pod_phase(cls, phase: Optional[str]) -> "HostPhase":
        """Convert a Kubernetes pod phase to a host phase.

        Succeeded, Failed, Unknown and anything unrecognised all collapse to
        STOPPED. ABSENT is never derived from a phase: it means the pod
        lookup returned 404.
        """
        if phase == "Pending":
            return cls.STARTING
        if phase == "Running":
            return cls.RUNNING
        return cls.STOPPED

    def __str__(self) -> str:
        return self.value
