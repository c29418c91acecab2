# khelper

`khelper` holds the logic behind an everyday Kubernetes helper that
complements `kubectl`. It works on plain Python data classes, defined in
`khelper.models`, that describe pods, events, replica sets, deployments and
stateful sets. You build those objects yourself, from whatever source you have,
and hand them to the functions below.

## Modules

- `khelper.models` holds the data classes: `Pod`, `ContainerStatus`,
  `ContainerState`, `PodCondition`, `Event`, `ObjectReference`, `ReplicaSet`,
  `OwnerReference`, `Deployment`, `StatefulSet`, `WorkloadRef` and
  `EventObjectRef`. `Event.timestamp()` returns the most specific time recorded
  on an event. It tries the event time, then the time the series was last
  observed, then the last timestamp, then the first timestamp, and finally the
  creation timestamp.
- `khelper.doctor` holds the diagnostic rules. `evaluate(snapshot, rules)`
  runs the rules over a `Snapshot`. `default_rules()` returns the built-in
  rules. They report these problems:
  - containers waiting in `CrashLoopBackOff`, `ImagePullBackOff` or
    `ErrImagePull`;
  - OOM kills;
  - three or more restarts of a container;
  - pods that are pending or unschedulable;
  - probe failures;
  - deployments and stateful sets with fewer replicas than desired;
  - warning events.

  Findings are sorted by severity (errors first), then by check, object and
  message. `has_issues(findings)` is true when any finding is a warning or an
  error. `finding_rows(findings, snapshot)` returns rows for a report table.
- `khelper.related` decides which events belong to a workload. The
  workload's own events count, and so do the events of its pods (matched by
  name or UID) and of the replica sets its deployment owns. Events of pods that
  have already been deleted also count, matched by the prefix of the replica
  set or stateful set name. `filter_related_events` keeps only events newer
  than a window and can keep only warnings. It returns them newest first.
  `summarize_events` turns events into report rows. `choose_container_for_logs`
  and `trim_log_excerpt` pick a container whose logs are worth keeping and cut
  an excerpt down to its last 4096 bytes.
- `khelper.podinfo` builds per-pod summaries. `pod_ready` gives a count such
  as `1/2`. `pod_status` gives a status string in the style of `kubectl`.
  `pod_restarts` adds up restarts. `human_duration_since` gives short ages such
  as `45s`, `3h`, `2mo` or `1y`. `summarize_pod` builds a `PodSummary`.
- `khelper.setimage` parses image updates. It handles `container=image`
  assignments, `target:tag` shorthand and kind-qualified targets such as
  `deployment/frontend` or `sts/db`. `resolve_effective_kind` reconciles a
  `--kind` value with a kind prefix. `prompt_kind_selection` asks the user to
  pick a workload by number.
- `khelper.rollout` has formatting helpers for rollout status, rollback
  messages, updated-image lists and the namespace used for a restart.
- `khelper.clear` parses the clear target (only `evicted` is supported) and
  builds the closing message. `confirm_clear_all_namespaces` asks `[y/N]`
  before a cleanup across all namespaces. Only `y` or `yes` confirms.
- `khelper.completion` works out which shell to use. It reads the argument,
  then the `--shell` value, then `SHELL`. It gives the conventional path for a
  completion file, expands `~`, and writes the hint shown after an install.
  `should_auto_install_completion` decides whether completion should be
  installed silently. It says no when `KHELPER_AUTO_COMPLETION=0`, when `CI` is
  set, when the session is not interactive, or when the command is itself a
  completion command.
- `khelper.config` merges settings into a `Settings` value. Explicit flags
  come first, then `KHELPER_*` environment variables, then `~/.khelper.yaml`,
  then the defaults: table output and a 30s request timeout. It checks the
  output format (`table` or `json`), makes the kubeconfig path absolute, and
  rejects negative timeouts.
- `khelper.durations` parses and formats durations written like `1h30m` or
  `300ms`. `parse_non_negative_duration` validates duration flags.
- `khelper.errors` defines `ExitError` and the error types for not found,
  ambiguous match, invalid pick, invalid kind and unavailable metrics.
  `exit_code(err)` maps any error, including a wrapped one, to an `ExitCode`.

## Examples

Parse a duration flag. An empty value gives the default:

```python
from khelper.durations import parse_duration, parse_non_negative_duration

since = parse_non_negative_duration("since", "30m", parse_duration("1h"))
```

Parse the arguments for an image update:

```python
from khelper.setimage import parse_set_image_input

request = parse_set_image_input(["deployment/frontend:v1.0.1"])
# request.target == "frontend", request.kind == "deployment",
# request.shorthand_tag == "v1.0.1"
```

Diagnose a crash-looping pod:

```python
from khelper.doctor import Snapshot, default_rules, evaluate, has_issues
from khelper.models import (
    ContainerState, ContainerStateWaiting, ContainerStatus, Pod, WorkloadRef,
)

pod = Pod(
    name="payment-0",
    namespace="shop",
    containers=["app"],
    phase="Running",
    container_statuses=[
        ContainerStatus(
            name="app",
            restart_count=6,
            state=ContainerState(waiting=ContainerStateWaiting(reason="CrashLoopBackOff")),
        )
    ],
)
snapshot = Snapshot(namespace="shop", workload=WorkloadRef(kind="pod", name="payment-0"), pods=[pod])

findings = evaluate(snapshot, default_rules())
if has_issues(findings):
    for finding in findings:
        print(finding.severity.value, finding.check, finding.object, finding.message)
```

Keep only the recent warning events of a deployment:

```python
from datetime import datetime, timedelta, timezone
from khelper.related import build_event_scope, filter_related_events

scope = build_event_scope(workload, pods, {"frontend-84578d7b58"})
recent = filter_related_events(events, scope, timedelta(minutes=15),
                               datetime.now(timezone.utc), warnings_only=True)
```

Load settings:

```python
from khelper.config import gather_values, load

settings = load(gather_values(flags={"output": "json"}))
```

Map an error to the exit code it should produce:

```python
from khelper.errors import exit_code

try:
    ...
except Exception as err:
    code = exit_code(err)
```

## What the package does not do

The package has no command-line program. It does not connect to a cluster.
There is no API client, so nothing here lists, fetches, deletes or patches
objects, streams logs, opens shells in pods, or reads metrics. It does not read
or write kubeconfig files either. It does not generate shell completion
scripts: it only chooses the shell and the path for one. Callers supply the
objects and carry out any actions themselves.

## Development

The tests use pytest, which is listed in the `test` extra:

```
pip install -e ".[test]"
pytest
```