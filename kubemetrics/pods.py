"""Fetching of pod and container data from the kubelet ``/pods`` endpoint."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from kubemetrics.resource import parse_quantity

KUBELET_PODS_PATH = "/pods"

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_WORKLOAD_KEYS = {
    "DaemonSet": "daemonsetName",
    "Deployment": "deploymentName",
    "Job": "jobName",
    "ReplicaSet": "replicasetName",
    "StatefulSet": "statefulsetName",
}


def _parse_time(value: Any) -> datetime:
    if not value:
        return _ZERO_TIME
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _metadata(pod: Mapping) -> Mapping:
    return pod.get("metadata") or {}


def _spec(pod: Mapping) -> Mapping:
    return pod.get("spec") or {}


def _status(pod: Mapping) -> Mapping:
    return pod.get("status") or {}


def _pod_id(pod: Mapping) -> str:
    meta = _metadata(pod)
    return f"{meta.get('namespace', '')}_{meta.get('name', '')}"


def _container_id(pod: Mapping, container_name: str) -> str:
    return f"{_pod_id(pod)}_{container_name}"


def _pod_labels(pod: Mapping) -> dict:
    return dict(_metadata(pod).get("labels") or {})


def _replicaset_name_to_deployment_name(name: str) -> str:
    return "-".join(name.split("-")[:-1])


def _add_workload_name(creator_kind: str, creator_name: str, metrics: dict) -> None:
    key = _WORKLOAD_KEYS.get(creator_kind)
    if key is None:
        return
    if creator_kind == "ReplicaSet":
        metrics["replicasetName"] = creator_name
        deployment = _replicaset_name_to_deployment_name(creator_name)
        if deployment:
            metrics["deploymentName"] = deployment
        return
    metrics[key] = creator_name


def _first_owner(pod: Mapping) -> Mapping | None:
    owners = _metadata(pod).get("ownerReferences") or []
    return owners[0] if owners else None


def _is_fake_pending_pod(status: Mapping) -> bool:
    """A pod reported as Pending although it was only scheduled before the API server was up."""
    conditions = status.get("conditions") or []
    return (
        status.get("phase") == "Pending"
        and len(conditions) == 1
        and conditions[0].get("type") == "PodScheduled"
        and conditions[0].get("status") == "True"
    )


def _container_statuses(pod: Mapping) -> dict:
    statuses: dict = {}
    for container in _status(pod).get("containerStatuses") or []:
        entry: dict = {}
        statuses[_container_id(pod, container.get("name", ""))] = entry
        state = container.get("state") or {}
        restart_count = container.get("restartCount", 0)

        if state.get("running") is not None:
            entry["status"] = "Running"
            entry["startedAt"] = _parse_time(state["running"].get("startedAt"))
            entry["restartCount"] = restart_count
            entry["isReady"] = bool(container.get("ready", False))
        elif state.get("waiting") is not None:
            entry["status"] = "Waiting"
            entry["reason"] = state["waiting"].get("reason", "")
            entry["restartCount"] = restart_count
        elif state.get("terminated") is not None:
            entry["status"] = "Terminated"
            entry["reason"] = state["terminated"].get("reason", "")
            entry["restartCount"] = restart_count
            entry["startedAt"] = _parse_time(state["terminated"].get("startedAt"))
        else:
            entry["status"] = "Unknown"
    return statuses


@dataclass
class PodsFetcher:
    """Queries the kubelet for the pods running on the node."""

    client: Any
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    def do_pods_fetch(self) -> dict:
        """Fetch ``/pods`` and return raw ``pod`` and ``container`` groups."""
        self.logger.debug("Retrieving the list of pods")

        response = self.client.get(KUBELET_PODS_PATH)
        try:
            if response.status_code != 200:
                raise RuntimeError(
                    f"error calling kubelet {KUBELET_PODS_PATH} path. "
                    f"Status code {response.status_code}"
                )
            try:
                body = response.text
            except Exception as exc:
                raise RuntimeError(
                    f"error reading response from kubelet {KUBELET_PODS_PATH} path. {exc}"
                ) from exc
        finally:
            close = getattr(response, "close", None)
            if callable(close):
                close()

        if not body:
            raise RuntimeError(
                f"error reading response from kubelet {KUBELET_PODS_PATH} path. Response is empty"
            )

        try:
            pod_list = json.loads(body)
        except ValueError as exc:
            raise ValueError(
                f"error decoding response from kubelet {KUBELET_PODS_PATH} path. {exc}"
            ) from exc
        if not isinstance(pod_list, dict):
            raise ValueError(
                f"error decoding response from kubelet {KUBELET_PODS_PATH} path. "
                "expected a pod list object"
            )

        raw: dict = {"pod": {}, "container": {}}

        # Some pods may lack the node IP due to a kubelet bug; borrow it from any other pod.
        missing_pod_ids: list = []
        missing_container_ids: list = []
        node_ip = ""

        for pod in pod_list.get("items") or []:
            pod_id = _pod_id(pod)
            pod_metrics = self._fetch_pod_data(pod)
            raw["pod"][pod_id] = pod_metrics

            if not node_ip and "nodeIP" in pod_metrics:
                node_ip = pod_metrics["nodeIP"]
            if node_ip:
                pod_metrics["nodeIP"] = node_ip
            else:
                missing_pod_ids.append(pod_id)

            for container_id, metrics in self._fetch_containers_data(pod).items():
                raw["container"][container_id] = metrics
                if not node_ip and "nodeIP" in metrics:
                    node_ip = metrics["nodeIP"]
                if node_ip:
                    metrics["nodeIP"] = node_ip
                else:
                    missing_container_ids.append(container_id)

        for pod_id in missing_pod_ids:
            raw["pod"][pod_id]["nodeIP"] = node_ip
        for container_id in missing_container_ids:
            raw["container"][container_id]["nodeIP"] = node_ip

        return raw

    def _fetch_containers_data(self, pod: Mapping) -> dict:
        statuses = _container_statuses(pod)
        meta, spec, status = _metadata(pod), _spec(pod), _status(pod)
        owner = _first_owner(pod)
        labels = _pod_labels(pod)

        result: dict = {}
        for container in spec.get("containers") or []:
            name = container.get("name", "")
            container_id = _container_id(pod, name)
            metrics: dict = {
                "containerName": name,
                "containerImage": container.get("image", ""),
                "namespace": meta.get("namespace", ""),
                "podName": meta.get("name", ""),
                "nodeName": spec.get("nodeName", ""),
            }
            result[container_id] = metrics

            if status.get("hostIP"):
                metrics["nodeIP"] = status["hostIP"]

            resources = container.get("resources") or {}
            requests = resources.get("requests") or {}
            limits = resources.get("limits") or {}
            if "cpu" in requests:
                metrics["cpuRequestedCores"] = parse_quantity(str(requests["cpu"])).milli_value()
            if "cpu" in limits:
                metrics["cpuLimitCores"] = parse_quantity(str(limits["cpu"])).milli_value()
            if "memory" in requests:
                metrics["memoryRequestedBytes"] = parse_quantity(str(requests["memory"])).value()
            if "memory" in limits:
                metrics["memoryLimitBytes"] = parse_quantity(str(limits["memory"])).value()

            if owner is not None:
                _add_workload_name(owner.get("kind", ""), owner.get("name", ""), metrics)

            metrics.update(statuses.get(container_id, {}))

            if labels:
                metrics["labels"] = dict(labels)

        return result

    def _fetch_pod_data(self, pod: Mapping) -> dict:
        meta, spec, status = _metadata(pod), _spec(pod), _status(pod)
        metrics: dict = {
            "namespace": meta.get("namespace", ""),
            "podName": meta.get("name", ""),
            "nodeName": spec.get("nodeName", ""),
        }

        self._fill_pod_status(metrics, status)

        if status.get("hostIP"):
            metrics["nodeIP"] = status["hostIP"]
        if status.get("podIP"):
            metrics["podIP"] = status["podIP"]
        if status.get("startTime"):
            metrics["startTime"] = _parse_time(status["startTime"])
        if meta.get("creationTimestamp"):
            metrics["createdAt"] = _parse_time(meta["creationTimestamp"])

        owner = _first_owner(pod)
        if owner is not None:
            kind, name = owner.get("kind", ""), owner.get("name", "")
            metrics["createdKind"] = kind
            metrics["createdBy"] = name
            _add_workload_name(kind, name, metrics)

        if status.get("reason"):
            metrics["reason"] = status["reason"]
        if status.get("message"):
            metrics["message"] = status["message"]

        labels = _pod_labels(pod)
        if labels:
            metrics["labels"] = labels

        return metrics

    def _fill_pod_status(self, metrics: dict, status: Mapping) -> None:
        if _is_fake_pending_pod(status):
            metrics["status"] = "Running"
            metrics["isReady"] = "True"
            metrics["isScheduled"] = "True"
            self.logger.debug("Fake Pending Pod marked as Running")
            return

        for condition in status.get("conditions") or []:
            kind = condition.get("type")
            if kind == "Ready":
                metrics["isReady"] = str(condition.get("status", ""))
            elif kind == "PodScheduled":
                metrics["isScheduled"] = str(condition.get("status", ""))

        metrics["status"] = str(status.get("phase", ""))