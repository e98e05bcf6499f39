"""Container data taken from the kubelet's cAdvisor metrics."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence

from kubemetrics.summary import ErrorGroup

KUBELET_CADVISOR_METRICS_PATH = "/metrics/cadvisor"

_DOCKER_NATIVE_WITHOUT_SYSTEMD = re.compile(r"^.*([0-9a-f]+)\Z", re.ASCII)
_DOCKER_NATIVE_WITH_SYSTEMD = re.compile(r"^.*\w+-([0-9a-f]+)\.scope\Z", re.ASCII)
_DOCKER_GENERIC = re.compile(r"^([0-9a-f]+)\Z")

FetchAndFilter = Callable[[Sequence[Any]], Iterable["MetricFamily"]]


@dataclass
class Sample:
    """A single metric sample: its labels and value."""

    labels: dict = field(default_factory=dict)
    value: Any = None


@dataclass
class MetricFamily:
    """A named group of samples of one metric."""

    name: str
    metrics: list = field(default_factory=list)


class _PartialFetchError(ErrorGroup):
    """Recoverable errors that still come with the groups fetched so far."""

    def __init__(self, errors: Iterable[BaseException], groups: dict):
        super().__init__(errors, recoverable=True)
        self.groups = groups


def _get_label(labels: Mapping[str, str], *names: str) -> tuple[str, bool]:
    for name in names:
        if name in labels:
            return labels[name], True
    return "", False


def _raw_entity_id(sample: Sample) -> str:
    container_name, found = _get_label(sample.labels, "container_name", "container")
    if not found:
        raise ValueError("container name not found in cAdvisor metrics")
    if not container_name:
        return ""

    namespace = sample.labels.get("namespace", "")
    if not namespace:
        raise ValueError("namespace not found in cAdvisor metrics")

    pod_name, _ = _get_label(sample.labels, "pod_name", "pod")
    if not pod_name:
        raise ValueError("pod name not found in cAdvisor metrics")

    return f"{namespace}_{pod_name}_{container_name}"


def extract_container_id(value: str) -> str:
    """Extract the container id from a cgroup path such as ``/kubepods/.../<id>``."""
    container_id = value[value.rfind("/") + 1 :]
    match = _DOCKER_NATIVE_WITH_SYSTEMD.match(container_id)
    if match:
        return match.group(1)
    match = _DOCKER_NATIVE_WITHOUT_SYSTEMD.match(container_id)
    if match:
        return match.group(0)
    match = _DOCKER_GENERIC.match(container_id)
    if match:
        return match.group(0)
    return container_id


def cadvisor_fetch_func(fetch_and_filter: FetchAndFilter, queries: Sequence[Any]) -> Callable[[], dict]:
    """Build a fetcher turning cAdvisor metric families into a raw ``container`` group.

    Recoverable problems with single samples are raised together as an
    ``ErrorGroup`` whose ``groups`` attribute holds what was collected.
    """

    def fetch() -> dict:
        try:
            families = list(fetch_and_filter(queries))
        except Exception as exc:
            raise RuntimeError(f"error requesting cadvisor metrics endpoint: {exc}") from exc

        errors: list = []
        containers: dict = {}
        groups = {"container": containers}

        for family in families:
            for sample in family.metrics:
                label, _ = _get_label(sample.labels, "container_name", "container")
                if label == "POD":
                    continue

                try:
                    entity_id = _raw_entity_id(sample)
                except ValueError as exc:
                    errors.append(exc)
                    continue
                if not entity_id:
                    continue

                container_id = extract_container_id(sample.labels.get("id", ""))
                if not container_id:
                    errors.append(ValueError("container id not found in cAdvisor metrics"))
                    continue

                metrics = containers.get(entity_id)
                if metrics is None:
                    metrics = {"containerID": container_id}
                    containers[entity_id] = metrics

                if family.name == "container_memory_usage_bytes":
                    image = sample.labels.get("image", "")
                    if not image:
                        errors.append(ValueError("container image not found in cAdvisor metrics"))
                        continue
                    metrics["containerImageID"] = image
                else:
                    metrics[family.name] = sample.value

        if errors:
            raise _PartialFetchError(errors, groups)
        return groups

    return fetch