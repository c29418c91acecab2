"""Helpers for rollout and restart commands: kind checks and report formatting."""

from __future__ import annotations

from typing import Mapping

from khelper.models import KIND_POD, KIND_STATEFULSET, NAMESPACE_ALL, WorkloadRef

_POD_KINDS = frozenset({KIND_POD, "po", "pods"})


def is_pod_kind(kind: str) -> bool:
    """Whether a --kind value names pods, which rollouts do not apply to."""
    return kind.strip().lower() in _POD_KINDS


def empty_as_dash(value: str) -> str:
    """The trimmed value, or "-" when it is blank."""
    value = value.strip()
    return value or "-"


def format_updated_images(updated: Mapping[str, str]) -> str:
    """Container image updates as "name=image" pairs, sorted by container name."""
    return ",".join(f"{name}={updated[name]}" for name in sorted(updated))


def restart_namespace(workload: WorkloadRef, fallback: str) -> str:
    """The workload's own namespace, or the fallback when it is blank or all namespaces."""
    namespace = workload.namespace.strip()
    if not namespace or namespace == NAMESPACE_ALL:
        return fallback
    return namespace


def format_revision(kind: str, current_revision: str, update_revision: str) -> str:
    """The REVISION cell of the rollout status table."""
    if kind == KIND_STATEFULSET:
        if update_revision:
            return f"{empty_as_dash(current_revision)}/{update_revision}"
        return empty_as_dash(current_revision)
    return current_revision or "-"


def format_undo_message(kind: str, name: str, namespace: str, from_revision: int, to_revision: int) -> str:
    """The line printed after a successful rollback."""
    if from_revision > 0:
        return (
            f"Rolled back {kind}/{name} in namespace {namespace} "
            f"from revision {from_revision} to {to_revision}."
        )
    return f"Rolled back {kind}/{name} in namespace {namespace} to revision {to_revision}."