"""Grouping of all kubelet data sources into one set of raw groups."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping, Optional

from kubemetrics.resource import Quantity, parse_quantity
from kubemetrics.summary import ErrorGroup, get_metrics_data, group_stats_summary

NodeGetter = Callable[[str], Mapping[str, Any]]

_CONDITION_VALUES = {"True": 1, "False": 0, "Unknown": -1}


def fill_groups_and_merge_non_existent(destination: dict, source: Optional[Mapping]) -> None:
    """Add missing groups to ``destination`` and missing keys to its existing entities."""
    for label, group in (source or {}).items():
        if label not in destination:
            destination[label] = group
            continue
        for entity_id, entity in destination[label].items():
            if entity_id not in group:
                continue
            for key, value in group[entity_id].items():
                entity.setdefault(key, value)


def _resources(raw: Optional[Mapping[str, Any]]) -> dict:
    return {
        name: value if isinstance(value, Quantity) else parse_quantity(str(value))
        for name, value in (raw or {}).items()
    }


def _node_conditions(conditions: Iterable[Mapping[str, Any]]) -> dict:
    result: dict = {}
    for condition in conditions:
        value = _CONDITION_VALUES.get(condition.get("status"))
        if value is None:
            continue
        kind = str(condition.get("type", ""))
        # Duplicate conditions that disagree are reported as unknown.
        if kind in result and result[kind] != value:
            value = -1
        result[kind] = value
    return result


class KubeletGrouper:
    """Merges fetcher output, the stats summary and node information."""

    def __init__(
        self,
        node_getter: Optional[NodeGetter],
        client: Any,
        fetchers: Iterable[Callable[[], Mapping]] = (),
        default_network_interface: str = "",
        logger: Optional[logging.Logger] = None,
    ):
        if node_getter is None:
            raise ValueError("NodeGetter must be set")
        self.node_getter = node_getter
        self.client = client
        self.fetchers = list(fetchers)
        self.default_network_interface = default_network_interface
        self.logger = logger or logging.getLogger(__name__)

    def group(self, spec_groups: Any) -> dict:
        """Return the merged raw groups, raising ``ErrorGroup`` on failure."""
        raw_groups: dict = {
            "network": {"interfaces": {"default": self.default_network_interface}},
        }

        for fetcher in self.fetchers:
            try:
                fetched = fetcher()
            except ErrorGroup as exc:
                fetched = getattr(exc, "groups", None)
            except Exception as exc:
                raise ErrorGroup([RuntimeError(f"error querying Kubelet. {exc}")]) from exc
            fill_groups_and_merge_non_existent(raw_groups, fetched)

        try:
            summary = get_metrics_data(self.client)
        except Exception as exc:
            raise ErrorGroup([RuntimeError(f"error querying Kubelet. {exc}")]) from exc

        resources, errors = group_stats_summary(summary)
        if errors:
            raise ErrorGroup(errors, recoverable=True)
        fill_groups_and_merge_non_existent(raw_groups, resources)

        node_name = (summary.get("node") or {}).get("nodeName", "")
        try:
            node = self.node_getter(node_name)
        except Exception as exc:
            raise ErrorGroup([RuntimeError(f"error querying ApiServer: {exc}")]) from exc

        requested_memory = 0
        requested_cpu = 0
        for container in raw_groups.get("container", {}).values():
            requested_memory += container.get("memoryRequestedBytes", 0)
            requested_cpu += container.get("cpuRequestedCores", 0)

        metadata = node.get("metadata") or {}
        spec = node.get("spec") or {}
        status = node.get("status") or {}

        node_group = {
            "node": {
                node_name: {
                    "labels": dict(metadata.get("labels") or {}),
                    "allocatable": _resources(status.get("allocatable")),
                    "capacity": _resources(status.get("capacity")),
                    "memoryRequestedBytes": requested_memory,
                    "cpuRequestedCores": requested_cpu,
                    "conditions": _node_conditions(status.get("conditions") or []),
                    "unschedulable": bool(spec.get("unschedulable", False)),
                    "kubeletVersion": (status.get("nodeInfo") or {}).get("kubeletVersion", ""),
                }
            }
        }
        fill_groups_and_merge_non_existent(raw_groups, node_group)
        return raw_groups