"""Parsing of set-image arguments and interactive kind selection."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Sequence, TextIO

from khelper.errors import ExitCode, ExitError
from khelper.models import KIND_DEPLOYMENT, KIND_POD, KIND_STATEFULSET, WorkloadRef

_USAGE = "expected either <target> <container=image> [container=image...] or <target:tag>"
_INTEGER = re.compile(r"[+-]?\d+")

_KIND_ALIASES = {
    KIND_DEPLOYMENT: KIND_DEPLOYMENT,
    "deploy": KIND_DEPLOYMENT,
    "deployment.apps": KIND_DEPLOYMENT,
    KIND_STATEFULSET: KIND_STATEFULSET,
    "sts": KIND_STATEFULSET,
    "statefulset.apps": KIND_STATEFULSET,
    KIND_POD: KIND_POD,
    "po": KIND_POD,
    "pods": KIND_POD,
}


@dataclass
class SetImageInput:
    """What the set-image arguments ask for."""

    target: str
    assignments: dict[str, str] = field(default_factory=dict)
    shorthand_tag: str = ""
    kind: str = ""


def canonical_set_image_kind(kind: str) -> str:
    """The canonical kind for a kind name or alias; empty when unknown."""
    return _KIND_ALIASES.get(kind.strip().lower(), "")


def parse_target_tag_shorthand(raw: str) -> Optional[tuple[str, str]]:
    """Split "target:tag"; None when the argument is not in that form."""
    raw = raw.strip()
    if not raw:
        raise ValueError("target is required")
    if "=" in raw or ":" not in raw:
        return None
    target, _, tag = raw.rpartition(":")
    target, tag = target.strip(), tag.strip()
    if not target or not tag:
        raise ValueError(f'invalid shorthand "{raw}" (expected target:tag)')
    return target, tag


def parse_kind_qualified_target(raw: str) -> tuple[str, str]:
    """Split an optional "kind/" prefix off a target: (target, kind)."""
    raw = raw.strip()
    if not raw:
        raise ValueError("target is required")
    prefix, slash, rest = raw.partition("/")
    if not slash:
        return raw, ""
    kind = canonical_set_image_kind(prefix)
    if not kind:
        return raw, ""
    target = rest.strip()
    if not target:
        raise ValueError(f'invalid target "{raw}" (expected kind/name)')
    return target, kind


def parse_image_assignments(values: Sequence[str]) -> dict[str, str]:
    """Parse "container=image" arguments into a mapping."""
    if not values:
        raise ValueError("at least one container=image assignment is required")
    result: dict[str, str] = {}
    for raw in values:
        raw = raw.strip()
        container, sep, image = raw.partition("=")
        container, image = container.strip(), image.strip()
        if not sep or not container or not image:
            raise ValueError(f'invalid image assignment "{raw}" (expected container=image)')
        if container in result:
            raise ValueError(f'duplicate image assignment for container "{container}"')
        result[container] = image
    return result


def parse_set_image_input(args: Sequence[str]) -> SetImageInput:
    """Interpret set-image arguments as explicit assignments or a tag shorthand."""
    if not args:
        raise ValueError(_USAGE)

    if len(args) > 1:
        target, kind = parse_kind_qualified_target(args[0].strip())
        return SetImageInput(target=target, assignments=parse_image_assignments(args[1:]), kind=kind)

    shorthand = parse_target_tag_shorthand(args[0])
    if shorthand is None:
        raise ValueError(_USAGE)
    raw_target, tag = shorthand
    target, kind = parse_kind_qualified_target(raw_target)
    return SetImageInput(target=target, shorthand_tag=tag, kind=kind)


def resolve_effective_kind(flag_kind: str, input_kind: str) -> str:
    """Reconcile --kind with a kind prefix on the target; pods are rejected."""
    effective = flag_kind.strip()
    if input_kind:
        if not effective:
            effective = input_kind
        else:
            canonical = canonical_set_image_kind(effective) or effective.lower()
            if canonical != input_kind:
                raise ExitError(
                    ExitCode.USAGE,
                    f'conflicting kinds: target prefix "{input_kind}" does not match --kind="{flag_kind}"',
                )
            effective = canonical
    if effective.strip().lower() in ("pod", "po", "pods"):
        raise ExitError(ExitCode.USAGE, "set-image supports only deployment or statefulset")
    return effective


def target_name_hint(target: str) -> str:
    """The bare name part of a target, after any "kind/" prefix."""
    target = target.strip()
    return target.rpartition("/")[2].strip()


def prompt_kind_selection(
    stream_in: TextIO, stream_out: TextIO, target: str, options: Sequence[WorkloadRef]
) -> WorkloadRef:
    """Ask the user to choose one of several matching workloads by number."""
    if not options:
        raise ValueError("no workload kinds to select from")

    stream_out.write(f'Target "{target}" matches multiple workload kinds:\n')
    for number, option in enumerate(options, start=1):
        stream_out.write(f"{number}) {option.kind}/{option.name} ({option.namespace})\n")

    while True:
        stream_out.write(f"Choose kind [1-{len(options)}]: ")
        stream_out.flush()
        try:
            line = stream_in.readline()
        except OSError as exc:
            raise ValueError(f"read kind selection: {exc}") from exc
        if not line:
            raise ValueError("no selection provided")
        value = line.strip()
        if _INTEGER.fullmatch(value):
            choice = int(value)
            if 1 <= choice <= len(options):
                return options[choice - 1]
        stream_out.write(f'Invalid selection "{value}". Enter a number from 1 to {len(options)}.\n')