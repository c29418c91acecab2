from datetime import datetime, timedelta, timezone

import pytest

from khelper.doctor import InvalidContainerError
from khelper.models import (
    EVENT_TYPE_NORMAL,
    EVENT_TYPE_WARNING,
    KIND_DEPLOYMENT,
    KIND_STATEFULSET,
    ContainerState,
    ContainerStateWaiting,
    ContainerStatus,
    Deployment,
    Event,
    EventObjectRef,
    ObjectReference,
    OwnerReference,
    Pod,
    ReplicaSet,
    WorkloadRef,
)
from khelper.related import (
    EventScope,
    build_event_scope,
    choose_container_for_logs,
    event_object,
    event_scope_object_refs,
    filter_related_events,
    is_event_in_scope,
    is_warning_event_type,
    normalize_event_kind,
    related_replica_set_names,
    replica_set_owned_by_deployment,
    summarize_events,
    trim_log_excerpt,
)

NOW = datetime(2026, 3, 6, 12, 0, 0, tzinfo=timezone.utc)


def _event(name, kind, obj_name, event_type, when, uid="", reason="", message=""):
    return Event(
        name=name,
        involved_object=ObjectReference(kind=kind, name=obj_name, uid=uid),
        type=event_type,
        reason=reason,
        message=message,
        last_timestamp=when,
    )


def _payment_workload():
    return WorkloadRef(kind=KIND_DEPLOYMENT, name="payment", namespace="shop", selector="app=payment")


def test_filter_related_events_applies_scope_since_and_warnings():
    scope = EventScope(
        workload_kind="deployment",
        workload_name="payment",
        pod_names={"payment-abc"},
        pod_uids={"pod-uid-1"},
        replica_set_names={"payment-7f4d9b4b5"},
    )
    events = [
        _event("deployment-info", "Deployment", "payment", EVENT_TYPE_NORMAL, NOW - timedelta(minutes=5)),
        _event("pod-warning", "Pod", "payment-abc", EVENT_TYPE_WARNING, NOW - timedelta(minutes=2), uid="pod-uid-1"),
        _event("rs-old-warning", "ReplicaSet", "payment-7f4d9b4b5", EVENT_TYPE_WARNING, NOW - timedelta(hours=2)),
        _event("other-pod-warning", "Pod", "checkout-xyz", EVENT_TYPE_WARNING, NOW - timedelta(minutes=1)),
    ]
    filtered = filter_related_events(events, scope, timedelta(hours=1), NOW, True)
    assert [e.name for e in filtered] == ["pod-warning"]


def test_is_event_in_scope_matches_pod_by_uid():
    scope = EventScope(workload_kind="deployment", workload_name="payment", pod_uids={"pod-uid-42"})
    event = Event(involved_object=ObjectReference(kind="Pod", name="payment-old-name", uid="pod-uid-42"))
    assert is_event_in_scope(event, scope) is True


def test_is_event_in_scope_rejects_unrelated_pod():
    scope = EventScope(workload_kind="deployment", workload_name="payment", pod_names={"payment-abc"})
    event = Event(involved_object=ObjectReference(kind="Pod", name="checkout-xyz"))
    assert is_event_in_scope(event, scope) is False


def test_filter_related_events_matches_deleted_deployment_pod_events():
    workload = WorkloadRef(kind=KIND_DEPLOYMENT, name="frontend")
    scope = build_event_scope(workload, None, {"frontend-84578d7b58"})
    events = [
        _event(
            "stale-pod-warning",
            "Pod",
            "frontend-84578d7b58-6v59m",
            EVENT_TYPE_WARNING,
            NOW - timedelta(seconds=90),
            reason="Unhealthy",
            message="Readiness probe failed",
        )
    ]
    filtered = filter_related_events(events, scope, timedelta(minutes=15), NOW, True)
    assert [e.name for e in filtered] == ["stale-pod-warning"]


def test_filter_related_events_newest_first_with_undated_last():
    scope = EventScope(workload_kind="deployment", workload_name="payment")
    events = [
        _event("b-old", "Deployment", "payment", EVENT_TYPE_NORMAL, NOW - timedelta(minutes=10)),
        _event("undated", "Deployment", "payment", EVENT_TYPE_NORMAL, None),
        _event("new", "Deployment", "payment", EVENT_TYPE_NORMAL, NOW - timedelta(minutes=1)),
        _event("a-old", "Deployment", "payment", EVENT_TYPE_NORMAL, NOW - timedelta(minutes=10)),
    ]
    filtered = filter_related_events(events, scope, timedelta(0), NOW, False)
    assert [e.name for e in filtered] == ["new", "a-old", "b-old", "undated"]


def test_filter_related_events_zero_since_keeps_old_events():
    scope = EventScope(workload_kind="deployment", workload_name="payment")
    events = [_event("ancient", "Deployment", "payment", EVENT_TYPE_NORMAL, NOW - timedelta(days=30))]
    assert [e.name for e in filter_related_events(events, scope, timedelta(0), NOW, False)] == ["ancient"]


def test_related_replica_set_names_uses_workload_namespace():
    deployment = Deployment(name="payment", namespace="shop", uid="dep-uid")
    replica_set = ReplicaSet(
        name="payment-7f4d9b4b5",
        namespace="shop",
        labels={"app": "payment"},
        owner_references=[OwnerReference(kind="Deployment", name="payment")],
    )
    names = related_replica_set_names(_payment_workload(), deployment, [replica_set])
    assert names == {"payment-7f4d9b4b5"}


def test_related_replica_set_names_ignores_other_namespace():
    deployment = Deployment(name="payment", namespace="shop", uid="dep-uid")
    replica_set = ReplicaSet(
        name="payment-7f4d9b4b5",
        namespace="default",
        labels={"app": "payment"},
        owner_references=[OwnerReference(kind="Deployment", name="payment")],
    )
    assert related_replica_set_names(_payment_workload(), deployment, [replica_set]) == set()


def test_related_replica_set_names_ignores_prefix_match_without_owner():
    deployment = Deployment(name="payment", namespace="shop", uid="dep-uid")
    replica_set = ReplicaSet(name="payment-7f4d9b4b5", namespace="shop", labels={"app": "payment"})
    assert related_replica_set_names(_payment_workload(), deployment, [replica_set]) == set()


def test_related_replica_set_names_ignores_owner_uid_mismatch():
    deployment = Deployment(name="payment", namespace="shop", uid="dep-current")
    replica_set = ReplicaSet(
        name="payment-7f4d9b4b5",
        namespace="shop",
        labels={"app": "payment"},
        owner_references=[OwnerReference(kind="Deployment", name="payment", uid="dep-old")],
    )
    assert related_replica_set_names(_payment_workload(), deployment, [replica_set]) == set()


def test_related_replica_set_names_empty_for_non_deployment():
    workload = WorkloadRef(kind=KIND_STATEFULSET, name="db", namespace="shop", selector="app=db")
    replica_set = ReplicaSet(
        name="db-1",
        namespace="shop",
        labels={"app": "db"},
        owner_references=[OwnerReference(kind="Deployment", name="db")],
    )
    assert related_replica_set_names(workload, None, [replica_set]) == set()


def test_replica_set_owned_by_deployment_case_insensitive_kind():
    replica_set = ReplicaSet(owner_references=[OwnerReference(kind="deployment", name="payment", uid="u1")])
    assert replica_set_owned_by_deployment(replica_set, "payment", "u1") is True
    assert replica_set_owned_by_deployment(replica_set, "checkout", "u1") is False


def test_collect_style_filters_related_pod_events():
    pods = [Pod(name="payment-old", uid="pod-old"), Pod(name="payment-new", uid="pod-new")]
    scope = build_event_scope(_payment_workload(), pods, set())
    events = [
        _event("payment-recent", "Pod", "payment-new", EVENT_TYPE_WARNING, NOW - timedelta(minutes=5), uid="pod-new"),
        _event("payment-old-event", "Pod", "payment-old", EVENT_TYPE_WARNING, NOW - timedelta(hours=3), uid="pod-old"),
        _event("other-workload", "Deployment", "checkout", EVENT_TYPE_WARNING, NOW - timedelta(minutes=2)),
    ]
    filtered = filter_related_events(events, scope, timedelta(hours=1), NOW, False)
    assert [e.name for e in filtered] == ["payment-recent"]


def test_collect_style_includes_related_replica_set_events():
    deployment = Deployment(name="payment", namespace="shop", uid="dep-uid")
    replica_set = ReplicaSet(
        name="payment-744f7c74d9",
        namespace="shop",
        labels={"app": "payment"},
        owner_references=[OwnerReference(kind="Deployment", name="payment", uid="dep-uid")],
    )
    rs_names = related_replica_set_names(_payment_workload(), deployment, [replica_set])
    scope = build_event_scope(_payment_workload(), [Pod(name="payment-6d98f", uid="payment-pod")], rs_names)
    events = [
        _event("payment-rs-failedcreate", "ReplicaSet", "payment-744f7c74d9", EVENT_TYPE_WARNING, NOW - timedelta(minutes=3)),
        _event("checkout-rs-failedcreate", "ReplicaSet", "checkout-55ff9f86f5", EVENT_TYPE_WARNING, NOW - timedelta(minutes=2)),
    ]
    filtered = filter_related_events(events, scope, timedelta(hours=1), NOW, False)
    assert [e.name for e in filtered] == ["payment-rs-failedcreate"]


def test_collect_style_includes_stale_pod_events_by_replica_set_prefix():
    scope = build_event_scope(
        _payment_workload(), [Pod(name="payment-6d98f", uid="payment-current")], {"payment-744f7c74d9"}
    )
    events = [
        _event(
            "payment-stale-pod-warning",
            "Pod",
            "payment-744f7c74d9-6v59m",
            EVENT_TYPE_WARNING,
            NOW - timedelta(seconds=90),
        )
    ]
    filtered = filter_related_events(events, scope, timedelta(hours=1), NOW, False)
    assert [e.name for e in filtered] == ["payment-stale-pod-warning"]


def test_build_event_scope_statefulset_prefix():
    scope = build_event_scope(WorkloadRef(kind=KIND_STATEFULSET, name="db"), [Pod(name="db-0", uid="u0")], set())
    assert scope.pod_name_prefixes == ["db-"]
    assert scope.pod_names == {"db-0"}
    assert scope.pod_uids == {"u0"}
    assert scope.workload_kind == "statefulset"


def test_event_scope_object_refs_order():
    scope = EventScope(
        workload_kind="deployment",
        workload_name="payment",
        pod_names={"payment-b", "payment-a"},
        replica_set_names={"payment-rs2", "payment-rs1"},
    )
    assert event_scope_object_refs(scope) == [
        EventObjectRef("deployment", "payment"),
        EventObjectRef("pod", "payment-a"),
        EventObjectRef("pod", "payment-b"),
        EventObjectRef("replicaset", "payment-rs1"),
        EventObjectRef("replicaset", "payment-rs2"),
    ]


def test_event_scope_object_refs_without_workload():
    scope = EventScope(pod_names={"x"})
    assert event_scope_object_refs(scope) == [EventObjectRef("pod", "x")]


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Deployment", "deployment"),
        ("deployments", "deployment"),
        ("deployment.apps", "deployment"),
        (" StatefulSets ", "statefulset"),
        ("Pods", "pod"),
        ("replicaset.apps", "replicaset"),
        ("Node", "node"),
        ("", ""),
    ],
)
def test_normalize_event_kind(raw, expected):
    assert normalize_event_kind(raw) == expected


def test_event_object_labels():
    assert event_object(Event(involved_object=ObjectReference(kind="Pod", name="web-1"))) == "pod/web-1"
    assert event_object(Event(involved_object=ObjectReference())) == "object/-"


def test_is_warning_event_type():
    assert is_warning_event_type(" warning ") is True
    assert is_warning_event_type("Normal") is False


def test_summarize_events():
    event = _event(
        "e1",
        "Pod",
        "web-1",
        " Warning ",
        datetime(2026, 3, 6, 9, 30, 15, 500000, tzinfo=timezone.utc),
        reason=" BackOff ",
        message="Back-off   restarting\nfailed container",
    )
    event.count = 4
    summary = summarize_events([event])[0]
    assert summary.type == "Warning"
    assert summary.reason == "BackOff"
    assert summary.object == "pod/web-1"
    assert summary.count == 4
    assert summary.message == "Back-off restarting failed container"
    assert summary.last_seen == "2026-03-06T09:30:15Z"
    assert summary.as_dict()["lastSeen"] == "2026-03-06T09:30:15Z"


def test_summarize_events_without_timestamp_omits_last_seen():
    summary = summarize_events([Event(name="e", type="Normal")])[0]
    assert summary.last_seen == ""
    assert "lastSeen" not in summary.as_dict()


def test_choose_container_for_logs_prefers_troubled_container():
    pod = Pod(
        name="web-1",
        containers=["app", "sidecar"],
        container_statuses=[
            ContainerStatus(name="app", ready=True, state=ContainerState(running=True)),
            ContainerStatus(name="sidecar", state=ContainerState(waiting=ContainerStateWaiting(reason="CrashLoopBackOff"))),
        ],
    )
    assert choose_container_for_logs(pod, "") == "sidecar"


def test_choose_container_for_logs_defaults_to_first():
    pod = Pod(name="web-1", containers=["app", "sidecar"])
    assert choose_container_for_logs(pod, "") == "app"
    assert choose_container_for_logs(None, "app") == ""
    assert choose_container_for_logs(Pod(name="empty"), "") == ""


def test_choose_container_for_logs_requested():
    pod = Pod(name="web-1", containers=["app", "sidecar"])
    assert choose_container_for_logs(pod, " sidecar ") == "sidecar"
    with pytest.raises(InvalidContainerError) as info:
        choose_container_for_logs(pod, "missing")
    assert str(info.value) == 'container "missing" not found in pod web-1'


def test_trim_log_excerpt():
    assert trim_log_excerpt("  line1\nline2  \n") == "line1\nline2"
    long_text = "a" * 5000 + "END"
    trimmed = trim_log_excerpt(long_text)
    assert len(trimmed) == 4096
    assert trimmed.endswith("END")