"""Diagnostic rules that turn a workload snapshot into findings."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Sequence

from khelper.models import (
    CONDITION_FALSE,
    EVENT_TYPE_WARNING,
    KIND_DEPLOYMENT,
    KIND_STATEFULSET,
    POD_PENDING,
    POD_SCHEDULED,
    ContainerStateTerminated,
    ContainerStatus,
    Deployment,
    Event,
    Pod,
    PodCondition,
    StatefulSet,
    WorkloadRef,
)

RESTART_WARNING_THRESHOLD = 3
_TIME_LAYOUT = "%Y-%m-%dT%H:%M:%SZ"


class Severity(str, Enum):
    """How serious a finding is."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


_SEVERITY_RANK = {Severity.ERROR: 0, Severity.WARNING: 1, Severity.INFO: 2}


@dataclass
class Finding:
    """One diagnosed problem with a suggested action."""

    severity: Severity
    check: str
    object: str
    message: str
    action: str
    evidence: dict[str, Any] = field(default_factory=dict)


@dataclass
class Rule:
    """A named check run against a snapshot."""

    name: str
    run: Optional[Callable[["Snapshot"], list[Finding]]] = None


@dataclass
class LogSnippet:
    """The tail of a container's log captured as evidence."""

    pod: str
    container: str
    tail: int
    text: str = ""
    error: str = ""


@dataclass
class Snapshot:
    """Everything collected about a workload for diagnosis."""

    namespace: str = ""
    target: str = ""
    workload: WorkloadRef = field(default_factory=WorkloadRef)
    deployment: Optional[Deployment] = None
    statefulset: Optional[StatefulSet] = None
    pods: list[Pod] = field(default_factory=list)
    selected_pod: Optional[Pod] = None
    selected_pod_warning: str = ""
    events: list[Event] = field(default_factory=list)
    since: timedelta = timedelta(0)
    log_snippet: Optional[LogSnippet] = None


class InvalidContainerError(Exception):
    """A requested container does not exist in the pod."""

    def __init__(self, pod: str, container: str):
        self.pod = pod
        self.container = container
        super().__init__(f'container "{container}" not found in pod {pod}')


def normalize_space(text: str) -> str:
    """Collapse all runs of whitespace into single spaces and trim."""
    return " ".join(text.split())


def _format_time(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(_TIME_LAYOUT)


def _pod_object(name: str) -> str:
    return "pod/" + name


def _all_container_statuses(pod: Pod) -> list[ContainerStatus]:
    return [*pod.init_container_statuses, *pod.container_statuses]


def _append_log_evidence(
    snapshot: Optional[Snapshot], pod_name: str, container_name: str, evidence: dict[str, Any]
) -> dict[str, Any]:
    snippet = snapshot.log_snippet if snapshot is not None else None
    if snippet is None or snippet.pod != pod_name:
        return evidence
    if container_name and snippet.container and snippet.container != container_name:
        return evidence
    evidence["logPod"] = snippet.pod
    evidence["logContainer"] = snippet.container
    evidence["logTail"] = snippet.tail
    if snippet.text:
        evidence["logExcerpt"] = snippet.text
    if snippet.error:
        evidence["logError"] = snippet.error
    return evidence


_WAITING_ACTIONS = {
    "ImagePullBackOff": "Verify image name/tag, registry reachability, and imagePullSecrets",
    "ErrImagePull": "Verify image name/tag, registry reachability, and imagePullSecrets",
    "CrashLoopBackOff": "Inspect container logs and startup config to fix repeated crashes",
}


def _waiting_state_finding(snapshot: Snapshot, pod_name: str, status: ContainerStatus) -> Optional[Finding]:
    waiting = status.state.waiting
    if waiting is None:
        return None
    action = _WAITING_ACTIONS.get(waiting.reason)
    if action is None:
        return None

    waiting_message = normalize_space(waiting.message)
    evidence: dict[str, Any] = {
        "pod": pod_name,
        "container": status.name,
        "reason": waiting.reason,
        "restartCount": status.restart_count,
    }
    if waiting_message:
        evidence["stateMessage"] = waiting_message
    evidence = _append_log_evidence(snapshot, pod_name, status.name, evidence)

    message = f"Container {status.name} is waiting with {waiting.reason}"
    if waiting_message:
        message += ": " + waiting_message
    return Finding(Severity.ERROR, "container-state", _pod_object(pod_name), message, action, evidence)


def check_container_waiting_state(snapshot: Snapshot) -> list[Finding]:
    """Containers stuck pulling images or crash-looping."""
    findings = []
    for pod in snapshot.pods:
        for status in _all_container_statuses(pod):
            finding = _waiting_state_finding(snapshot, pod.name, status)
            if finding is not None:
                findings.append(finding)
    return findings


def _oom_killed_state(status: ContainerStatus) -> Optional[ContainerStateTerminated]:
    for state in (status.state, status.last_termination_state):
        if state.terminated is not None and state.terminated.reason == "OOMKilled":
            return state.terminated
    return None


def _oom_killed_finding(snapshot: Snapshot, pod_name: str, status: ContainerStatus) -> Optional[Finding]:
    terminated = _oom_killed_state(status)
    if terminated is None:
        return None
    evidence: dict[str, Any] = {
        "pod": pod_name,
        "container": status.name,
        "reason": terminated.reason,
        "exitCode": terminated.exit_code,
        "restartCount": status.restart_count,
    }
    if terminated.finished_at is not None:
        evidence["finishedAt"] = _format_time(terminated.finished_at)
    evidence = _append_log_evidence(snapshot, pod_name, status.name, evidence)
    return Finding(
        Severity.ERROR,
        "oom-killed",
        _pod_object(pod_name),
        f"Container {status.name} was OOMKilled",
        "Increase memory limits/requests or reduce memory usage in the container",
        evidence,
    )


def _frequent_restart_finding(snapshot: Snapshot, pod_name: str, status: ContainerStatus) -> Optional[Finding]:
    if status.restart_count < RESTART_WARNING_THRESHOLD:
        return None
    evidence: dict[str, Any] = {
        "pod": pod_name,
        "container": status.name,
        "restartCount": status.restart_count,
        "threshold": RESTART_WARNING_THRESHOLD,
    }
    evidence = _append_log_evidence(snapshot, pod_name, status.name, evidence)
    return Finding(
        Severity.WARNING,
        "frequent-restarts",
        _pod_object(pod_name),
        f"Container {status.name} restarted {status.restart_count} times",
        "Inspect logs and probe settings to stabilize startup/runtime behavior",
        evidence,
    )


def check_oom_and_restarts(snapshot: Snapshot) -> list[Finding]:
    """Containers killed for memory or restarting too often."""
    findings = []
    for pod in snapshot.pods:
        for status in _all_container_statuses(pod):
            for finding in (
                _oom_killed_finding(snapshot, pod.name, status),
                _frequent_restart_finding(snapshot, pod.name, status),
            ):
                if finding is not None:
                    findings.append(finding)
    return findings


def _find_pod_condition(conditions: Iterable[PodCondition], kind: str, status: str) -> Optional[PodCondition]:
    return next((c for c in conditions if c.type == kind and c.status == status), None)


def check_pending_unschedulable(snapshot: Snapshot) -> list[Finding]:
    """Pods stuck in Pending, flagging those the scheduler cannot place."""
    findings = []
    for pod in snapshot.pods:
        if pod.phase != POD_PENDING:
            continue
        condition = _find_pod_condition(pod.conditions, POD_SCHEDULED, CONDITION_FALSE)
        if condition is not None and condition.reason.lower() == "unschedulable":
            evidence: dict[str, Any] = {
                "pod": pod.name,
                "phase": pod.phase,
                "condition": POD_SCHEDULED,
                "conditionReason": condition.reason,
                "conditionMessage": normalize_space(condition.message),
            }
            if condition.last_probe_time is not None:
                evidence["conditionLastProbe"] = _format_time(condition.last_probe_time)
            findings.append(
                Finding(
                    Severity.ERROR,
                    "pending-unschedulable",
                    _pod_object(pod.name),
                    f"Pod is Pending and Unschedulable: {normalize_space(condition.message)}",
                    "Check node resources, taints/tolerations, node selectors, and affinity constraints",
                    evidence,
                )
            )
            continue
        findings.append(
            Finding(
                Severity.WARNING,
                "pending-pod",
                _pod_object(pod.name),
                "Pod is Pending and not yet Ready",
                "Inspect scheduling and container startup events for this pod",
                {"pod": pod.name, "phase": pod.phase},
            )
        )
    return findings


def _is_warning_event(event: Event) -> bool:
    return event.type.strip().lower() == EVENT_TYPE_WARNING.lower()


def _event_object(event: Event) -> str:
    kind = event.involved_object.kind.strip().lower() or "object"
    if not event.involved_object.name:
        return kind
    return f"{kind}/{event.involved_object.name}"


def _event_evidence(event: Event) -> dict[str, Any]:
    evidence: dict[str, Any] = {
        "reason": event.reason,
        "type": event.type,
        "message": normalize_space(event.message),
        "count": event.count,
    }
    moment = event.timestamp()
    if moment is not None:
        evidence["timestamp"] = _format_time(moment)
    for key, value in (("firstTimestamp", event.first_timestamp), ("lastTimestamp", event.last_timestamp)):
        if value is not None:
            aware = value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
            if aware.timestamp() > 0:
                evidence[key] = _format_time(value)
    if event.series_last_observed is not None:
        evidence["lastObserved"] = _format_time(event.series_last_observed)
    return evidence


def _probe_failures_from_pods(snapshot: Snapshot) -> list[Finding]:
    findings = []
    for pod in snapshot.pods:
        for status in pod.container_statuses:
            # Running but not ready points at readiness or startup probes.
            if not status.state.running or status.ready:
                continue
            message = f"Container {status.name} is running but not Ready"
            if status.started is False:
                message = f"Container {status.name} has not started successfully (startup probe may be failing)"
            evidence: dict[str, Any] = {"pod": pod.name, "container": status.name, "ready": status.ready}
            if status.started is not None:
                evidence["started"] = status.started
            evidence = _append_log_evidence(snapshot, pod.name, status.name, evidence)
            findings.append(
                Finding(
                    Severity.WARNING,
                    "probe-failure",
                    _pod_object(pod.name),
                    message,
                    "Review readiness/startup probe endpoints, thresholds, and initial delays",
                    evidence,
                )
            )
    return findings


def _is_probe_failure_event(event: Event) -> bool:
    if not _is_warning_event(event):
        return False
    if event.reason.lower() == "unhealthy":
        return True
    lowered = event.message.lower()
    return any(
        phrase in lowered for phrase in ("liveness probe", "readiness probe", "startup probe", "probe failed")
    )


def _probe_failures_from_events(snapshot: Snapshot) -> list[Finding]:
    findings = []
    for event in snapshot.events:
        if not _is_probe_failure_event(event):
            continue
        evidence = _append_log_evidence(snapshot, event.involved_object.name, "", _event_evidence(event))
        findings.append(
            Finding(
                Severity.WARNING,
                "probe-failure",
                _event_object(event),
                normalize_space(f"{event.reason}: {event.message}"),
                "Review liveness/readiness/startup probe endpoints, timeout, and initial delay",
                evidence,
            )
        )
    return findings


def check_probe_failures(snapshot: Snapshot) -> list[Finding]:
    """Probe problems seen in container status and in warning events."""
    return _probe_failures_from_pods(snapshot) + _probe_failures_from_events(snapshot)


def _check_deployment_replicas(snapshot: Snapshot) -> list[Finding]:
    dep = snapshot.deployment
    if dep is None:
        return []
    desired = 1 if dep.replicas is None else dep.replicas
    if desired == 0:
        return []
    ready, available = dep.ready_replicas, dep.available_replicas
    evidence = {"desired": desired, "ready": ready, "available": available}
    obj = f"deployment/{dep.name}"
    counts = f"(ready={ready} available={available} desired={desired})"
    if ready == 0 or available == 0:
        return [
            Finding(
                Severity.ERROR,
                "workload-replicas",
                obj,
                f"Deployment has no healthy replicas {counts}",
                "Inspect pod failures, rollout status, and warning events for this deployment",
                evidence,
            )
        ]
    if ready < desired or available < desired:
        return [
            Finding(
                Severity.WARNING,
                "workload-replicas",
                obj,
                f"Deployment replicas are below desired state {counts}",
                "Inspect rollout progress and pod readiness conditions",
                evidence,
            )
        ]
    return []


def _check_statefulset_replicas(snapshot: Snapshot) -> list[Finding]:
    sts = snapshot.statefulset
    if sts is None:
        return []
    desired = 1 if sts.replicas is None else sts.replicas
    if desired == 0:
        return []
    ready = sts.ready_replicas
    evidence = {"desired": desired, "ready": ready}
    obj = f"statefulset/{sts.name}"
    if ready == 0:
        return [
            Finding(
                Severity.ERROR,
                "workload-replicas",
                obj,
                f"StatefulSet has no ready replicas (ready={ready} desired={desired})",
                "Inspect pod failures, PVC binding, and rollout conditions",
                evidence,
            )
        ]
    if ready < desired:
        return [
            Finding(
                Severity.WARNING,
                "workload-replicas",
                obj,
                f"StatefulSet replicas are below desired state (ready={ready} desired={desired})",
                "Inspect rollout progress and pod readiness conditions",
                evidence,
            )
        ]
    return []


def check_workload_replicas(snapshot: Snapshot) -> list[Finding]:
    """Deployments or stateful sets below their desired replica count."""
    if snapshot.workload.kind == KIND_DEPLOYMENT:
        return _check_deployment_replicas(snapshot)
    if snapshot.workload.kind == KIND_STATEFULSET:
        return _check_statefulset_replicas(snapshot)
    return []


def check_warning_events(snapshot: Snapshot) -> list[Finding]:
    """One finding per related warning event."""
    return [
        Finding(
            Severity.WARNING,
            "warning-events",
            _event_object(event),
            normalize_space(f"{event.reason}: {event.message}"),
            "Review this warning event and correlate with pod/workload status",
            _event_evidence(event),
        )
        for event in snapshot.events
        if _is_warning_event(event)
    ]


def default_rules() -> list[Rule]:
    """The rules the doctor command runs."""
    return [
        Rule("container-state", check_container_waiting_state),
        Rule("oom-and-restarts", check_oom_and_restarts),
        Rule("pending-unschedulable", check_pending_unschedulable),
        Rule("probe-failures", check_probe_failures),
        Rule("workload-replicas", check_workload_replicas),
        Rule("warning-events", check_warning_events),
    ]


def _severity_rank(severity: Any) -> int:
    try:
        return _SEVERITY_RANK[Severity(severity)]
    except ValueError:
        return 3


def evaluate(snapshot: Snapshot, rules: Sequence[Rule]) -> list[Finding]:
    """Run the rules and return findings ordered by severity, check, object, message."""
    findings: list[Finding] = []
    for rule in rules:
        if rule.run is not None:
            findings.extend(rule.run(snapshot))
    findings.sort(key=lambda f: (_severity_rank(f.severity), f.check, f.object, f.message))
    return findings


def has_issues(findings: Iterable[Finding]) -> bool:
    """Whether any finding is a warning or an error."""
    return any(f.severity in (Severity.WARNING, Severity.ERROR) for f in findings)


def finding_rows(findings: Sequence[Finding], snapshot: Snapshot) -> list[list[str]]:
    """Table rows for the doctor report, with a summary row when nothing was found."""
    if not findings:
        workload = snapshot.workload
        return [["INFO", "summary", f"{workload.kind}/{workload.name}", "No findings detected", "-"]]
    return [
        [
            Severity(f.severity).value.upper(),
            f.check,
            normalize_space(f.object),
            normalize_space(f.message),
            normalize_space(f.action),
        ]
        for f in findings
    ]