"""Plain data types describing the Kubernetes objects the tool inspects."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

KIND_DEPLOYMENT = "deployment"
KIND_STATEFULSET = "statefulset"
KIND_POD = "pod"
NAMESPACE_ALL = "*"
CLEAR_TARGET_EVICTED = "evicted"

EVENT_TYPE_NORMAL = "Normal"
EVENT_TYPE_WARNING = "Warning"

POD_PENDING = "Pending"
POD_RUNNING = "Running"
POD_SCHEDULED = "PodScheduled"
CONDITION_TRUE = "True"
CONDITION_FALSE = "False"


@dataclass
class ContainerStateWaiting:
    """A container that has not started yet."""

    reason: str = ""
    message: str = ""


@dataclass
class ContainerStateTerminated:
    """A container that has finished running."""

    reason: str = ""
    message: str = ""
    exit_code: int = 0
    finished_at: Optional[datetime] = None


@dataclass
class ContainerState:
    """The state of a container: at most one of waiting, running, terminated."""

    waiting: Optional[ContainerStateWaiting] = None
    running: bool = False
    terminated: Optional[ContainerStateTerminated] = None


@dataclass
class ContainerStatus:
    """Runtime status of one container in a pod."""

    name: str = ""
    ready: bool = False
    restart_count: int = 0
    started: Optional[bool] = None
    state: ContainerState = field(default_factory=ContainerState)
    last_termination_state: ContainerState = field(default_factory=ContainerState)


@dataclass
class PodCondition:
    """One condition entry from a pod's status."""

    type: str = ""
    status: str = ""
    reason: str = ""
    message: str = ""
    last_probe_time: Optional[datetime] = None


@dataclass
class Pod:
    """A pod with the spec and status fields the tool reads."""

    name: str = ""
    namespace: str = ""
    uid: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    creation_timestamp: Optional[datetime] = None
    deletion_timestamp: Optional[datetime] = None
    node_name: str = ""
    containers: list[str] = field(default_factory=list)
    phase: str = ""
    reason: str = ""
    start_time: Optional[datetime] = None
    conditions: list[PodCondition] = field(default_factory=list)
    container_statuses: list[ContainerStatus] = field(default_factory=list)
    init_container_statuses: list[ContainerStatus] = field(default_factory=list)

    def has_container(self, name: str) -> bool:
        """Whether the pod spec declares a container with this name."""
        return name in self.containers


@dataclass
class ObjectReference:
    """Reference to the object an event is about."""

    kind: str = ""
    name: str = ""
    namespace: str = ""
    uid: str = ""


@dataclass
class Event:
    """A Kubernetes event."""

    name: str = ""
    namespace: str = ""
    involved_object: ObjectReference = field(default_factory=ObjectReference)
    type: str = ""
    reason: str = ""
    message: str = ""
    count: int = 0
    event_time: Optional[datetime] = None
    series_last_observed: Optional[datetime] = None
    last_timestamp: Optional[datetime] = None
    first_timestamp: Optional[datetime] = None
    creation_timestamp: Optional[datetime] = None

    def timestamp(self) -> Optional[datetime]:
        """The most specific time recorded on the event, or None."""
        for moment in (
            self.event_time,
            self.series_last_observed,
            self.last_timestamp,
            self.first_timestamp,
        ):
            if moment is not None:
                return moment
        return self.creation_timestamp


@dataclass
class OwnerReference:
    """An owner entry in an object's metadata."""

    kind: str = ""
    name: str = ""
    uid: str = ""


@dataclass
class ReplicaSet:
    """A replica set with its ownership metadata."""

    name: str = ""
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    owner_references: list[OwnerReference] = field(default_factory=list)


@dataclass
class Deployment:
    """A deployment with its replica counts."""

    name: str = ""
    namespace: str = ""
    uid: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    replicas: Optional[int] = None
    ready_replicas: int = 0
    available_replicas: int = 0


@dataclass
class StatefulSet:
    """A stateful set with its replica counts."""

    name: str = ""
    namespace: str = ""
    uid: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    replicas: Optional[int] = None
    ready_replicas: int = 0


@dataclass
class WorkloadRef:
    """A resolved workload: its kind, name, namespace and pod selector."""

    kind: str = ""
    name: str = ""
    namespace: str = ""
    selector: str = ""


@dataclass(frozen=True)
class EventObjectRef:
    """An object whose events should be listed."""

    kind: str
    name: str