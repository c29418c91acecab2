"""Per-pod summaries: readiness, status, restart count and age."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from khelper.models import Pod

_MINUTE = 60
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR


@dataclass
class PodSummary:
    """One row of the pods report."""

    name: str
    ready: str
    status: str
    restarts: int
    age: str
    namespace: str = ""
    node: str = ""

    def as_dict(self) -> dict[str, Any]:
        """The JSON form of the row; namespace and node are left out when empty."""
        data: dict[str, Any] = {}
        if self.namespace:
            data["namespace"] = self.namespace
        data.update(
            name=self.name,
            ready=self.ready,
            status=self.status,
            restarts=self.restarts,
            age=self.age,
        )
        if self.node:
            data["node"] = self.node
        return data


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def pod_ready(pod: Pod) -> str:
    """Ready containers over declared containers, such as "1/2"."""
    ready = sum(1 for status in pod.container_statuses if status.ready)
    return f"{ready}/{len(pod.containers)}"


def pod_status(pod: Pod) -> str:
    """The most telling status word for a pod, in the style of kubectl."""
    if pod.deletion_timestamp is not None:
        return "Terminating"
    if pod.reason:
        return pod.reason

    for status in pod.init_container_statuses:
        waiting = status.state.waiting
        if waiting is not None and waiting.reason:
            return waiting.reason
        terminated = status.state.terminated
        if terminated is not None:
            reason = terminated.reason.strip()
            if reason and reason.lower() != "completed":
                return reason

    for status in pod.container_statuses:
        waiting = status.state.waiting
        if waiting is not None and waiting.reason:
            return waiting.reason
        terminated = status.state.terminated
        if terminated is not None and terminated.reason:
            return terminated.reason

    return pod.phase or "Unknown"


def pod_restarts(pod: Pod) -> int:
    """Total restarts across app and init containers."""
    return sum(s.restart_count for s in pod.container_statuses) + sum(
        s.restart_count for s in pod.init_container_statuses
    )


def human_duration_since(moment: Optional[datetime], now: Optional[datetime] = None) -> str:
    """A short age such as "45s", "3h" or "2mo"; "unknown" without a time."""
    if moment is None:
        return "unknown"
    if now is None:
        now = datetime.now(timezone.utc)
    seconds = max((_aware(now) - _aware(moment)).total_seconds(), 0.0)

    if seconds < _MINUTE:
        return f"{int(seconds)}s"
    if seconds < _HOUR:
        return f"{int(seconds / _MINUTE)}m"
    if seconds < _DAY:
        return f"{int(seconds / _HOUR)}h"
    if seconds < 30 * _DAY:
        return f"{int(seconds / _DAY)}d"
    if seconds < 365 * _DAY:
        return f"{int(seconds / (30 * _DAY))}mo"
    return f"{int(seconds / (365 * _DAY))}y"


def summarize_pod(pod: Pod, include_namespace: bool = False, now: Optional[datetime] = None) -> PodSummary:
    """The report row for one pod."""
    return PodSummary(
        name=pod.name,
        ready=pod_ready(pod),
        status=pod_status(pod),
        restarts=pod_restarts(pod),
        age=human_duration_since(pod.creation_timestamp, now),
        namespace=pod.namespace if include_namespace else "",
        node=pod.node_name,
    )