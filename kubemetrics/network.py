"""Network metric lookup with a fallback to the node's default interface."""

from __future__ import annotations

from typing import Any, Callable, Mapping

FetchFunc = Callable[[str, str, Mapping], Any]


def _default_interface(groups: Mapping) -> str:
    network = groups.get("network")
    if network is None:
        raise LookupError("network group not found")
    interfaces = network.get("interfaces")
    if interfaces is None:
        raise LookupError("network interfaces attribute not found")
    if "default" not in interfaces:
        raise LookupError("default interface not found")
    default = interfaces["default"]
    if not isinstance(default, str):
        raise LookupError("default interface is not a valid interface name")
    if not default:
        raise LookupError("default interface not set")
    return default


def _metric_from_default_interface(default: str, metric_key: str, metrics: Mapping) -> Any:
    if "interfaces" not in metrics:
        raise LookupError("interfaces metrics not found")
    interfaces = metrics["interfaces"]
    if not isinstance(interfaces, Mapping) or not all(
        isinstance(value, Mapping) for value in interfaces.values()
    ):
        raise LookupError("wrong format for interfaces metrics")
    if default not in interfaces:
        raise LookupError("default interface metrics not found")
    interface = interfaces[default]
    if metric_key not in interface:
        raise LookupError("metric not found for default interface")
    return interface[metric_key]


def from_raw_with_fallback_to_default_interface(metric_key: str) -> FetchFunc:
    """Build a fetch function reading ``metric_key`` or, failing that, the default interface's value."""

    def fetch(group_label: str, entity_id: str, groups: Mapping) -> Any:
        if group_label not in groups:
            raise LookupError("group not found")
        group = groups[group_label]
        if entity_id not in group:
            raise LookupError("entity not found")
        entity = group[entity_id]
        if metric_key in entity:
            return entity[metric_key]

        try:
            default = _default_interface(groups)
            return _metric_from_default_interface(default, metric_key, entity)
        except LookupError as exc:
            raise LookupError(
                f"metric not found and default interface fallback failed: {exc}"
            ) from exc

    return fetch