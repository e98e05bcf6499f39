# kubemetrics

A library for collecting metrics from the kubelet on a Kubernetes node and grouping them by
entity: nodes, pods, containers and volumes.

The results are "raw groups": nested dictionaries keyed first by group label (`"node"`,
`"pod"`, `"container"`, `"volume"`, `"network"`) and then by entity ID, for example
`raw["container"]["kube-system_my-pod_my-container"]`.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

### `kubemetrics.connector`

Works out how to reach the kubelet.

- `ConnectorConfig` holds the settings: `node_name`, `node_ip`, `kubelet_port`,
  `kubelet_scheme`, `kubelet_timeout`, `api_server_host`, `bearer_token_file`,
  `api_insecure` and `api_ca_file`.
- `DefaultConnector(config, node_getter=None, logger=None).connect()` picks the kubelet port
  from `kubelet_port` or, when that is 0, from the node returned by `node_getter(node_name)`
  (`status.daemonEndpoints.kubeletEndpoint.Port`). The scheme comes from `kubelet_scheme`,
  or is `http` for port 10255 and `https` for port 10250; for any other port both HTTPS and
  then HTTP are tried. It first probes `/healthz` on the node IP (over HTTPS without
  certificate verification, sending the bearer token read from `bearer_token_file`, which
  is re-read at most once a minute), and if that fails, probes
  `/api/v1/nodes/<node_name>/proxy/healthz` on `api_server_host`. It returns a
  `ConnParams` or raises `ConnectionError`.
- `StaticConnector(session, url, timeout=None).connect()` returns fixed parameters without
  probing anything.
- `ConnParams` carries the base `url`, the `session` and the `timeout`;
  `url_for(path)` joins a path onto the base URL.

### `kubemetrics.client`

`KubeletClient(connector, *, logger=None, max_retries=0, backoff=...)` connects through the
connector once, then `get(url_path)` sends a GET request below the kubelet endpoint. When the
connection uses a `requests.Session`, failed requests and 5xx responses are retried up to
`max_retries` attempts in total, sleeping `backoff(attempt)` seconds between them (one
second more each time by default). Any other session object is called once.

### `kubemetrics.summary`

- `get_metrics_data(client)` fetches and decodes `/stats/summary`.
- `group_stats_summary(summary)` returns `(groups, errors)`: node, pod, container and volume
  raw metrics, plus a list of the problems met.
- `ErrorGroup` is the exception carrying several errors (`errors`) and whether they are
  `recoverable`.
- Entity helpers: `from_raw_groups_entity_id_generator(key)`,
  `from_raw_entity_id_group_entity_id_generator(key)`,
  `from_raw_groups_entity_type_generator(group_label, raw_entity_id, groups, cluster_name)`
  (for example `k8s:<cluster>:<namespace>:<pod>:container`), `from_label_get_namespace`
  and `add_uint64_raw_metric`.

### `kubemetrics.pods`

`PodsFetcher(client, logger=None).do_pods_fetch()` reads `/pods` and returns `pod` and
`container` groups: status and readiness, node and pod IPs, start and creation times, owner
workload names (DaemonSet, Deployment, Job, ReplicaSet with its deployment, StatefulSet),
requested and limit CPU (millicores) and memory (bytes), labels and container states. Pods
without a node IP take the one seen on any other pod.

### `kubemetrics.cadvisor`

`cadvisor_fetch_func(fetch_and_filter, queries)` returns a fetcher that calls
`fetch_and_filter(queries)`, expects `MetricFamily` objects (each with a `name` and a list
of `Sample` objects holding `labels` and `value`), and builds a `container` group with
`containerID`, `containerImageID` and the remaining metric values. Samples with missing
labels are skipped and reported together in an `ErrorGroup` whose `groups` attribute holds
what was collected. `extract_container_id(path)` pulls the container ID out of a cgroup path.

### `kubemetrics.grouper`

`KubeletGrouper(node_getter, client, fetchers=(), default_network_interface="", logger=None)`
and its `group(spec_groups)` method run every fetcher, read the stats summary, fetch the node
through `node_getter(node_name)`, and merge everything with
`fill_groups_and_merge_non_existent(destination, source)` (which never overwrites existing
keys). The node entity gains `labels`, `allocatable` and `capacity` (as `Quantity` values),
summed `memoryRequestedBytes` and `cpuRequestedCores` of its containers, `conditions`
(1 for True, 0 for False, -1 for Unknown or disagreeing duplicates), `unschedulable` and
`kubeletVersion`. Failures are raised as `ErrorGroup`.

### `kubemetrics.resource` and `kubemetrics.transform`

- `parse_quantity("1985m")` returns a `Quantity` with `value()`, `milli_value()` (both
  rounded up) and `as_approximate_float()`.
- `one_attribute_per_allocatable(resources)` / `one_attribute_per_capacity(resources)`:
  `{"cpu": parse_quantity("1985m")}` → `{"allocatableCpuCores": 1.985}`; memory and storage
  gain a `Bytes` suffix.
- `one_metric_per_label({"app": "x"})` → `{"label.app": "x"}`.
- `prefix_from_map_int(prefix)` returns a function prefixing the keys of a `str -> int` map.

### `kubemetrics.network`

`from_raw_with_fallback_to_default_interface(metric_key)` returns a function
`(group_label, entity_id, groups)` that reads the metric from the entity, or else from the
entity's `interfaces` entry for `groups["network"]["interfaces"]["default"]`.

## Example

```python
import requests

from kubemetrics.client import KubeletClient
from kubemetrics.connector import StaticConnector
from kubemetrics.grouper import KubeletGrouper
from kubemetrics.pods import PodsFetcher

client = KubeletClient(
    StaticConnector(requests.Session(), "http://10.0.0.5:10255"), max_retries=3
)
node = {"metadata": {"labels": {}}, "status": {"nodeInfo": {"kubeletVersion": "v1.28.0"}}}

grouper = KubeletGrouper(
    node_getter=lambda name: node,
    client=client,
    fetchers=[PodsFetcher(client).do_pods_fetch],
    default_network_interface="eth0",
)
groups = grouper.group(None)
```

## What this package does not do

- It has no command-line program and no scheduler; it is a library to be called.
- It does not parse the Prometheus text format. The cAdvisor fetcher needs a
  `fetch_and_filter` function supplied by the caller that returns `MetricFamily` objects.
- It does not talk to the Kubernetes API for node objects; the caller supplies `node_getter`.
- It does not report or send metrics anywhere; it only builds the raw groups and offers the
  transforms above.