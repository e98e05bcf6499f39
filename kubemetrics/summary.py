"""Grouping of kubelet ``/stats/summary`` data into raw metric groups."""

from __future__ import annotations

import json
from typing import Any, Callable, Iterable, Mapping, Optional

STATS_SUMMARY_PATH = "/stats/summary"

RawMetrics = dict
RawGroups = dict
EntityIDGenerator = Callable[[str, str, dict], str]

_FS_FIELDS = (
    ("AvailableBytes", "availableBytes"),
    ("CapacityBytes", "capacityBytes"),
    ("UsedBytes", "usedBytes"),
    ("InodesFree", "inodesFree"),
    ("Inodes", "inodes"),
    ("InodesUsed", "inodesUsed"),
)

_NODE_MEMORY_FIELDS = (
    ("memoryUsageBytes", "usageBytes"),
    ("memoryAvailableBytes", "availableBytes"),
    ("memoryWorkingSetBytes", "workingSetBytes"),
    ("memoryRssBytes", "rssBytes"),
    ("memoryPageFaults", "pageFaults"),
    ("memoryMajorPageFaults", "majorPageFaults"),
)


class ErrorGroup(Exception):
    """A collection of errors raised together, possibly recoverable."""

    def __init__(self, errors: Iterable[BaseException], recoverable: bool = False):
        self.errors = list(errors)
        self.recoverable = recoverable
        super().__init__("; ".join(str(err) for err in self.errors))


def add_uint64_raw_metric(raw: dict, name: str, value: Optional[int]) -> None:
    """Store ``value`` under ``name`` unless it is missing."""
    if value is not None:
        raw[name] = value


def get_metrics_data(client: Any) -> dict:
    """Fetch and decode the kubelet stats summary through ``client.get``."""
    try:
        response = client.get(STATS_SUMMARY_PATH)
    except Exception as exc:
        raise RuntimeError(
            f"performing GET request to kubelet endpoint {STATS_SUMMARY_PATH!r}: {exc}"
        ) from exc

    try:
        if response.status_code != 200:
            try:
                detail = f"response body: {response.text}"
            except Exception as exc:  # body could not be read
                detail = f"reading response body: {exc}"
            raise RuntimeError(
                f"received non-OK response code from kubelet: {response.status_code}: {detail}"
            )
        try:
            summary = json.loads(response.text)
        except ValueError as exc:
            raise ValueError(
                f"unmarshaling the response body into kubelet stats Summary: {exc}"
            ) from exc
    finally:
        close = getattr(response, "close", None)
        if callable(close):
            close()

    if not isinstance(summary, dict):
        raise ValueError(
            "unmarshaling the response body into kubelet stats Summary: not an object"
        )
    return summary


def _add_fs(raw: dict, prefix: str, stats: Mapping[str, Any]) -> None:
    for suffix, key in _FS_FIELDS:
        add_uint64_raw_metric(raw, prefix + suffix, stats.get(key))


def _add_errors(raw: dict, stats: Mapping[str, Any]) -> None:
    rx, tx = stats.get("rxErrors"), stats.get("txErrors")
    if rx is not None and tx is not None:
        raw["errors"] = rx + tx


def _add_network(raw: dict, network: Mapping[str, Any]) -> None:
    add_uint64_raw_metric(raw, "rxBytes", network.get("rxBytes"))
    add_uint64_raw_metric(raw, "txBytes", network.get("txBytes"))
    _add_errors(raw, network)

    interfaces = {}
    for iface in network.get("interfaces") or []:
        metrics: dict = {}
        add_uint64_raw_metric(metrics, "rxBytes", iface.get("rxBytes"))
        add_uint64_raw_metric(metrics, "txBytes", iface.get("txBytes"))
        _add_errors(metrics, iface)
        interfaces[iface.get("name", "")] = metrics
    raw["interfaces"] = interfaces


def _node_stats(node: Mapping[str, Any]) -> tuple[dict, str]:
    node_name = node.get("nodeName") or ""
    if not node_name:
        raise ValueError(
            f"empty node identifier, possible data error in {STATS_SUMMARY_PATH} response"
        )
    raw: dict = {"nodeName": node_name}

    cpu = node.get("cpu")
    if cpu is not None:
        add_uint64_raw_metric(raw, "usageNanoCores", cpu.get("usageNanoCores"))
        add_uint64_raw_metric(raw, "usageCoreNanoSeconds", cpu.get("usageCoreNanoSeconds"))

    memory = node.get("memory")
    if memory is not None:
        for name, key in _NODE_MEMORY_FIELDS:
            add_uint64_raw_metric(raw, name, memory.get(key))

    network = node.get("network")
    if network is not None:
        _add_network(raw, network)

    fs = node.get("fs")
    if fs is not None:
        _add_fs(raw, "fs", fs)

    runtime = node.get("runtime")
    if runtime is not None and runtime.get("imageFs") is not None:
        _add_fs(raw, "runtime", runtime["imageFs"])

    return raw, node_name


def _pod_stats(pod: Mapping[str, Any]) -> tuple[dict, str]:
    ref = pod.get("podRef") or {}
    name, namespace = ref.get("name") or "", ref.get("namespace") or ""
    if not name or not namespace:
        raise ValueError(
            f"empty pod identifier, possible data error in {STATS_SUMMARY_PATH} response"
        )
    raw: dict = {"podName": name, "namespace": namespace}

    network = pod.get("network")
    if network is not None:
        _add_network(raw, network)

    return raw, f"{namespace}_{name}"


def _container_stats(container: Mapping[str, Any]) -> dict:
    name = container.get("name") or ""
    if not name:
        raise ValueError(
            f"empty container identifier, possible data error in {STATS_SUMMARY_PATH} response"
        )
    raw: dict = {"containerName": name}

    cpu = container.get("cpu")
    if cpu is not None:
        add_uint64_raw_metric(raw, "usageNanoCores", cpu.get("usageNanoCores"))
    memory = container.get("memory")
    if memory is not None:
        add_uint64_raw_metric(raw, "usageBytes", memory.get("usageBytes"))
        add_uint64_raw_metric(raw, "workingSetBytes", memory.get("workingSetBytes"))
    rootfs = container.get("rootfs")
    if rootfs is not None:
        _add_fs(raw, "fs", rootfs)
    return raw


def _volume_stats(volume: Mapping[str, Any]) -> dict:
    name = volume.get("name") or ""
    if not name:
        raise ValueError(
            f"empty volume identifier, possible data error in {STATS_SUMMARY_PATH} response"
        )
    raw: dict = {"volumeName": name}
    pvc = volume.get("pvcRef")
    if pvc is not None:
        raw["pvcName"] = pvc.get("name", "")
        raw["pvcNamespace"] = pvc.get("namespace", "")
    _add_fs(raw, "fs", volume)
    return raw


def group_stats_summary(stats_summary: Optional[Mapping[str, Any]]) -> tuple[Optional[dict], list]:
    """Group a stats summary into pod, container, volume and node raw metrics.

    Returns the groups and a list of the errors met along the way.
    """
    if stats_summary is None:
        return None, [ValueError("got nil stats summary")]

    errors: list = []
    groups: dict = {"pod": {}, "container": {}, "volume": {}, "node": {}}

    try:
        node_raw, node_id = _node_stats(stats_summary.get("node") or {})
    except ValueError as exc:
        errors.append(exc)
    else:
        groups["node"][node_id] = node_raw

    pods = stats_summary.get("pods")
    if pods is None:
        errors.append(
            ValueError(f"pods data not found, possible data error in {STATS_SUMMARY_PATH} response")
        )
        return groups, errors

    for pod in pods:
        try:
            pod_raw, pod_id = _pod_stats(pod)
        except ValueError as exc:
            errors.append(exc)
            continue
        groups["pod"][pod_id] = pod_raw
        namespace, pod_name = pod_raw["namespace"], pod_raw["podName"]

        for volume in pod.get("volume") or []:
            try:
                volume_raw = _volume_stats(volume)
            except ValueError as exc:
                errors.append(exc)
                continue
            volume_raw["podName"] = pod_name
            volume_raw["namespace"] = namespace
            groups["volume"][f"{namespace}_{pod_name}_{volume_raw['volumeName']}"] = volume_raw

        for container in pod.get("containers") or []:
            try:
                container_raw = _container_stats(container)
            except ValueError as exc:
                errors.append(exc)
                continue
            container_raw["podName"] = pod_name
            container_raw["namespace"] = namespace
            entity_id = f"{namespace}_{pod_name}_{container_raw['containerName']}"
            groups["container"][entity_id] = container_raw

    return groups, errors


def _entity(groups: Mapping, group_label: str, raw_entity_id: str) -> Mapping:
    return (groups.get(group_label) or {}).get(raw_entity_id) or {}


def from_raw_groups_entity_id_generator(key: str) -> EntityIDGenerator:
    """Build a generator returning the string stored under ``key`` for an entity."""

    def generate(group_label: str, raw_entity_id: str, groups: Mapping) -> str:
        entity = _entity(groups, group_label, raw_entity_id)
        if key not in entity:
            raise KeyError(f"{key!r} not found for {group_label!r}")
        value = entity[key]
        if not isinstance(value, str):
            raise TypeError(f"incorrect type of {key!r} for {group_label!r}")
        return value

    return generate


def from_raw_entity_id_group_entity_id_generator(key: str) -> EntityIDGenerator:
    """Build a generator stripping the ``<value of key>_`` prefix off the raw entity id."""

    def generate(group_label: str, raw_entity_id: str, groups: Mapping) -> str:
        entity = _entity(groups, group_label, raw_entity_id)
        if key not in entity:
            raise KeyError(f"{key!r} not found for {group_label!r}")
        value = raw_entity_id.removeprefix(f"{entity[key]}_")
        if not value:
            raise ValueError("generated entity ID is empty")
        return value

    return generate


def _get_keys(group_label: str, raw_entity_id: str, groups: Mapping, *keys: str) -> list:
    if group_label not in groups:
        raise KeyError(f"{group_label!r} not found")
    group = groups[group_label]
    if raw_entity_id not in group:
        raise KeyError(f"entity data {raw_entity_id!r} not found for {group_label!r}")
    entity = group[raw_entity_id]

    values = []
    for key in keys:
        if key not in entity:
            raise KeyError(f"{key!r} not found for {group_label!r}")
        value = entity[key]
        if not isinstance(value, str):
            raise TypeError(f"incorrect type of {key!r} for {group_label!r}")
        values.append(value)
    return values


def from_raw_groups_entity_type_generator(
    group_label: str, raw_entity_id: str, groups: Mapping, cluster_name: str
) -> str:
    """Compose the entity type from the cluster name, group label and namespace/pod."""
    if group_label in ("namespace", "node"):
        return f"k8s:{cluster_name}:{group_label}"

    if group_label == "container":
        namespace, pod_name = _get_keys(group_label, raw_entity_id, groups, "namespace", "podName")
        if not namespace or not pod_name:
            raise ValueError(f"empty values for generated entity type for {group_label!r}")
        return f"k8s:{cluster_name}:{namespace}:{pod_name}:{group_label}"

    (namespace,) = _get_keys(group_label, raw_entity_id, groups, "namespace")
    if not namespace:
        raise ValueError(f"empty namespace for generated entity type for {group_label!r}")
    return f"k8s:{cluster_name}:{namespace}:{group_label}"


def from_label_get_namespace(metrics: Mapping[str, Any]) -> str:
    """Return the namespace stored in ``metrics``, or an empty string."""
    namespace = metrics.get("namespace")
    return namespace if isinstance(namespace, str) else ""