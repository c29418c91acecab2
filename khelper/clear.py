"""Argument handling, confirmation and messages for clearing transient objects."""

from __future__ import annotations

from typing import Sequence, TextIO

from khelper.errors import ExitCode, ExitError
from khelper.models import CLEAR_TARGET_EVICTED, NAMESPACE_ALL


def parse_clear_target(args: Sequence[str]) -> str:
    """The clear target named by the arguments; defaults to evicted pods."""
    if not args:
        return CLEAR_TARGET_EVICTED
    target = args[0].strip().lower()
    if target in ("", CLEAR_TARGET_EVICTED):
        return CLEAR_TARGET_EVICTED
    raise ExitError(ExitCode.USAGE, f'unsupported clear target "{args[0]}" (allowed: evicted)')


def clear_scope_label(scope: str) -> str:
    """How a namespace scope is named in messages."""
    if scope == NAMESPACE_ALL:
        return "all namespaces"
    return f'namespace "{scope}"'


def confirm_clear_all_namespaces(stream_in: TextIO, stream_out: TextIO) -> bool:
    """Ask before clearing across all namespaces; only "y" or "yes" confirm."""
    stream_out.write("This will delete evicted pods across all namespaces. Continue? [y/N]: ")
    stream_out.flush()
    answer = stream_in.readline().strip().lower()
    return answer in ("y", "yes")


def clear_summary(matched: int, deleted: int, dry_run: bool, scope: str) -> str:
    """The closing line of a clear run."""
    label = clear_scope_label(scope)
    if matched == 0:
        return f"No evicted pods found in {label}."
    if dry_run:
        return f"Dry-run: {matched} evicted pod(s) would be deleted in {label}."
    return f"Deleted {deleted} evicted pod(s) in {label}."