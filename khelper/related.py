"""Working out which events, replica sets and containers belong to a workload."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping, Optional, Sequence

from khelper.doctor import InvalidContainerError, normalize_space
from khelper.models import (
    EVENT_TYPE_WARNING,
    KIND_DEPLOYMENT,
    KIND_POD,
    KIND_STATEFULSET,
    NAMESPACE_ALL,
    Deployment,
    Event,
    EventObjectRef,
    Pod,
    ReplicaSet,
    WorkloadRef,
)

MAX_LOG_EVIDENCE_BYTES = 4096
_RFC3339 = "%Y-%m-%dT%H:%M:%SZ"

_KIND_ALIASES = {
    "deployment": "deployment",
    "deployments": "deployment",
    "deployment.apps": "deployment",
    "statefulset": "statefulset",
    "statefulsets": "statefulset",
    "statefulset.apps": "statefulset",
    "pod": "pod",
    "pods": "pod",
    "replicaset": "replicaset",
    "replicasets": "replicaset",
    "replicaset.apps": "replicaset",
}


@dataclass
class EventScope:
    """The set of objects whose events count as related to a workload."""

    workload_kind: str = ""
    workload_name: str = ""
    pod_names: set[str] = field(default_factory=set)
    pod_uids: set[str] = field(default_factory=set)
    replica_set_names: set[str] = field(default_factory=set)
    pod_name_prefixes: list[str] = field(default_factory=list)


@dataclass
class EventSummary:
    """One row of the events report."""

    type: str
    reason: str
    object: str
    count: int
    message: str
    last_seen: str = ""

    def as_dict(self) -> dict[str, Any]:
        """The JSON form of the row; lastSeen is left out when unknown."""
        data: dict[str, Any] = {}
        if self.last_seen:
            data["lastSeen"] = self.last_seen
        data.update(
            type=self.type,
            reason=self.reason,
            object=self.object,
            count=self.count,
            message=self.message,
        )
        return data


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def normalize_event_kind(value: str) -> str:
    """Lower-case a kind and fold plural and group-qualified spellings."""
    kind = value.strip().lower()
    return _KIND_ALIASES.get(kind, kind)


def event_object(event: Event) -> str:
    """The kind/name label of the object an event is about."""
    kind = normalize_event_kind(event.involved_object.kind) or "object"
    name = event.involved_object.name.strip() or "-"
    return f"{kind}/{name}"


def is_warning_event_type(event_type: str) -> bool:
    """Whether an event type is Warning, ignoring case and surrounding space."""
    return event_type.strip().lower() == EVENT_TYPE_WARNING.lower()


def replica_set_owned_by_deployment(
    replica_set: ReplicaSet, deployment_name: str, deployment_uid: str
) -> bool:
    """Whether the replica set's owner references point at the deployment."""
    for owner in replica_set.owner_references:
        if owner.kind.lower() != "deployment":
            continue
        if owner.name != deployment_name:
            continue
        if deployment_uid and owner.uid and owner.uid != deployment_uid:
            return False
        return True
    return False


def _requirement_matches(requirement: str, labels: Mapping[str, str]) -> bool:
    requirement = requirement.strip()
    if not requirement:
        return True
    if "!=" in requirement:
        key, value = (part.strip() for part in requirement.split("!=", 1))
        return labels.get(key) != value
    if "==" in requirement:
        key, value = (part.strip() for part in requirement.split("==", 1))
        return labels.get(key) == value
    if "=" in requirement:
        key, value = (part.strip() for part in requirement.split("=", 1))
        return labels.get(key) == value
    if requirement.startswith("!"):
        return requirement[1:].strip() not in labels
    return requirement in labels


def _selector_matches(selector: str, labels: Mapping[str, str]) -> bool:
    return all(_requirement_matches(part, labels) for part in selector.split(","))


def related_replica_set_names(
    workload: WorkloadRef,
    deployment: Optional[Deployment],
    replica_sets: Iterable[ReplicaSet],
) -> set[str]:
    """Names of the replica sets in the workload's namespace owned by its deployment."""
    if workload.kind != KIND_DEPLOYMENT or not workload.selector:
        return set()
    deployment_uid = deployment.uid if deployment is not None else ""
    namespace = workload.namespace
    names = set()
    for replica_set in replica_sets:
        if namespace and namespace != NAMESPACE_ALL and replica_set.namespace != namespace:
            continue
        if not _selector_matches(workload.selector, replica_set.labels):
            continue
        if replica_set_owned_by_deployment(replica_set, workload.name, deployment_uid):
            names.add(replica_set.name)
    return names


def build_event_scope(
    workload: WorkloadRef,
    pods: Optional[Iterable[Pod]],
    replica_set_names: Optional[Iterable[str]],
) -> EventScope:
    """Collect the workload, its pods and replica sets into an event scope."""
    rs_names = set(replica_set_names or ())
    scope = EventScope(
        workload_kind=normalize_event_kind(workload.kind),
        workload_name=workload.name,
        replica_set_names=rs_names,
    )
    for pod in pods or ():
        scope.pod_names.add(pod.name)
        if pod.uid:
            scope.pod_uids.add(pod.uid)

    if workload.kind == KIND_DEPLOYMENT:
        scope.pod_name_prefixes = sorted(f"{name}-" for name in rs_names if name.strip())
    elif workload.kind == KIND_STATEFULSET and workload.name.strip():
        scope.pod_name_prefixes = [f"{workload.name.strip()}-"]
    return scope


def event_scope_object_refs(scope: EventScope) -> list[EventObjectRef]:
    """The objects to list events for: the workload, then pods, then replica sets."""
    refs = []
    if scope.workload_kind.strip() and scope.workload_name.strip():
        refs.append(EventObjectRef(scope.workload_kind, scope.workload_name))
    refs.extend(EventObjectRef(KIND_POD, name) for name in sorted(scope.pod_names))
    refs.extend(EventObjectRef("replicaset", name) for name in sorted(scope.replica_set_names))
    return refs


def is_event_in_scope(event: Event, scope: EventScope) -> bool:
    """Whether an event is about the workload, one of its pods or replica sets."""
    kind = normalize_event_kind(event.involved_object.kind)
    name = event.involved_object.name.strip()
    uid = event.involved_object.uid

    if kind == scope.workload_kind and name == scope.workload_name:
        return True
    if kind == "pod":
        if name in scope.pod_names:
            return True
        if uid and uid in scope.pod_uids:
            return True
        if any(name.startswith(prefix) for prefix in scope.pod_name_prefixes):
            return True
    if kind == "replicaset" and name in scope.replica_set_names:
        return True
    return False


def _newest_first_key(event: Event) -> tuple[int, float, str]:
    moment = event.timestamp()
    if moment is None:
        return (1, 0.0, event.name)
    return (0, -_aware(moment).timestamp(), event.name)


def filter_related_events(
    events: Iterable[Event],
    scope: EventScope,
    since: timedelta,
    now: datetime,
    warnings_only: bool,
) -> list[Event]:
    """Events in scope and inside the time window, newest first."""
    cutoff = _aware(now) - since if since > timedelta(0) else None
    kept = []
    for event in events:
        if warnings_only and not is_warning_event_type(event.type):
            continue
        if not is_event_in_scope(event, scope):
            continue
        moment = event.timestamp()
        if cutoff is not None and moment is not None and _aware(moment) < cutoff:
            continue
        kept.append(event)
    kept.sort(key=_newest_first_key)
    return kept


def summarize_events(events: Sequence[Event]) -> list[EventSummary]:
    """Report rows for the given events."""
    summaries = []
    for event in events:
        moment = event.timestamp()
        summaries.append(
            EventSummary(
                type=event.type.strip(),
                reason=event.reason.strip(),
                object=event_object(event),
                count=event.count,
                message=normalize_space(event.message),
                last_seen=_aware(moment).astimezone(timezone.utc).strftime(_RFC3339) if moment else "",
            )
        )
    return summaries


def choose_container_for_logs(pod: Optional[Pod], requested: str) -> str:
    """The container whose logs are worth capturing; empty when there is none."""
    if pod is None:
        return ""
    requested = requested.strip()
    if requested:
        if not pod.has_container(requested):
            raise InvalidContainerError(pod.name, requested)
        return requested
    if not pod.containers:
        return ""
    for status in pod.container_statuses:
        if status.state.waiting is not None or status.state.terminated is not None or status.restart_count > 0:
            return status.name
    return pod.containers[0]


def trim_log_excerpt(text: str) -> str:
    """Trim a log and keep at most its last 4096 bytes."""
    encoded = text.strip().encode("utf-8")
    if len(encoded) <= MAX_LOG_EVIDENCE_BYTES:
        return encoded.decode("utf-8")
    return encoded[-MAX_LOG_EVIDENCE_BYTES:].decode("utf-8", errors="ignore")