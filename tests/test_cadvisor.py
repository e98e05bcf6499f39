import pytest

from kubemetrics.cadvisor import MetricFamily, Sample, cadvisor_fetch_func, extract_container_id
from kubemetrics.summary import ErrorGroup


def _static(families):
    def fetch(queries):
        return families

    return fetch


def _capture_errors(families):
    with pytest.raises(ErrorGroup) as info:
        cadvisor_fetch_func(_static(families), [])()
    return info.value


def test_extract_container_id_without_systemd():
    full = (
        "/docker/d44b560aba016229fd4f87a33bf81e8eaf6c81932a0623530456e8f80f9675ad/kubepods/"
        "besteffort/pod6edbcc6c66e4b5af53005f91bf0bc1fd/"
        "7588a02459ef3166ba043c5a605c9ce65e4dd250d7ee40428a28d806c4116e97"
    )
    assert extract_container_id(full) == "7588a02459ef3166ba043c5a605c9ce65e4dd250d7ee40428a28d806c4116e97"


def test_extract_container_id_with_systemd():
    full = (
        "/docker/ae17ce6dcd2f27905cedf80609044290eccd98115b4e1ded08fcf6852cf939ae/kubepods.slice/"
        "kubepods-besteffort.slice/kubepods-besteffort-pod13118b761000f8fe2c4662d5f32d9532.slice/"
        "crio-ebccdd64bb3ef5dfa9d9b167cb5e30f9b696c2694fb7e0783af5575c28be3d1b.scope"
    )
    assert extract_container_id(full) == "ebccdd64bb3ef5dfa9d9b167cb5e30f9b696c2694fb7e0783af5575c28be3d1b"


def test_extract_container_id_docker_generic():
    full = "docker://5a4eefc5b30f6f12402665bd920ee8e889ba9e14bdcc623e2865a79d40f58412"
    assert extract_container_id(full) == "5a4eefc5b30f6f12402665bd920ee8e889ba9e14bdcc623e2865a79d40f58412"


def test_extract_container_id_empty():
    assert extract_container_id("") == ""


def test_fetch_builds_container_group():
    families = [
        MetricFamily(
            "container_memory_usage_bytes",
            [
                Sample(
                    {
                        "container_name": "heapster",
                        "id": "/kubepods/besteffort/podbb142c1b/015ff1fea2583aba674c824c754de8c3a0ef52ee4bb82b9bbc523be8f346393c",
                        "image": "k8s.gcr.io/heapster-amd64@sha256:da3288b0fe2312c621c2a6d08f24ccc56183156ec70767987501287db4927b9d",
                        "namespace": "kube-system",
                        "pod_name": "heapster-5mz5f",
                    },
                    3.0572544e07,
                ),
                Sample(
                    {
                        "container_name": "POD",
                        "id": "/kubepods/besteffort/podbb142c1b/abc",
                        "image": "pause",
                        "namespace": "kube-system",
                        "pod_name": "heapster-5mz5f",
                    },
                    1.0,
                ),
                Sample(
                    {
                        "container_name": "",
                        "id": "/kubepods/besteffort/podbb142c1b",
                        "namespace": "kube-system",
                        "pod_name": "heapster-5mz5f",
                    },
                    2.0,
                ),
                Sample(
                    {
                        "container": "addon-resizer",
                        "id": "/kubepods/podf89b6c09/3328c17bfd22f1a82fcdf8707c2f8f040c462e548c24780079bba95d276d93e1",
                        "image": "gcr.io/google_containers/addon-resizer@sha256:e77acf80697a70386c04ae3ab494a7b13917cb30de2326dcf1a10a5118eddabe",
                        "namespace": "kube-system",
                        "pod": "kube-state-metrics-57f4659995-6n2qq",
                    },
                    1.7788928e07,
                ),
            ],
        ),
        MetricFamily(
            "container_cpu_cfs_periods_total",
            [
                Sample(
                    {
                        "container": "addon-resizer",
                        "id": "/kubepods/podf89b6c09/3328c17bfd22f1a82fcdf8707c2f8f040c462e548c24780079bba95d276d93e1",
                        "namespace": "kube-system",
                        "pod": "kube-state-metrics-57f4659995-6n2qq",
                    },
                    8495.0,
                )
            ],
        ),
        MetricFamily(
            "container_cpu_cfs_throttled_seconds_total",
            [
                Sample(
                    {
                        "container": "addon-resizer",
                        "id": "/kubepods/podf89b6c09/3328c17bfd22f1a82fcdf8707c2f8f040c462e548c24780079bba95d276d93e1",
                        "namespace": "kube-system",
                        "pod": "kube-state-metrics-57f4659995-6n2qq",
                    },
                    287.965920749,
                )
            ],
        ),
    ]

    groups = cadvisor_fetch_func(_static(families), [])()

    assert groups == {
        "container": {
            "kube-system_heapster-5mz5f_heapster": {
                "containerID": "015ff1fea2583aba674c824c754de8c3a0ef52ee4bb82b9bbc523be8f346393c",
                "containerImageID": "k8s.gcr.io/heapster-amd64@sha256:da3288b0fe2312c621c2a6d08f24ccc56183156ec70767987501287db4927b9d",
            },
            "kube-system_kube-state-metrics-57f4659995-6n2qq_addon-resizer": {
                "containerID": "3328c17bfd22f1a82fcdf8707c2f8f040c462e548c24780079bba95d276d93e1",
                "containerImageID": "gcr.io/google_containers/addon-resizer@sha256:e77acf80697a70386c04ae3ab494a7b13917cb30de2326dcf1a10a5118eddabe",
                "container_cpu_cfs_periods_total": 8495.0,
                "container_cpu_cfs_throttled_seconds_total": 287.965920749,
            },
        }
    }


def test_fetch_passes_queries_through():
    seen = []

    def fetch(queries):
        seen.append(queries)
        return []

    queries = ["container_memory_usage_bytes", "container_memory_mapped_file"]
    groups = cadvisor_fetch_func(fetch, queries)()
    assert seen == [queries]
    assert groups == {"container": {}}


def test_fetch_wraps_request_failure():
    def fetch(queries):
        raise OSError("boom")

    with pytest.raises(RuntimeError, match="error requesting cadvisor metrics endpoint: boom"):
        cadvisor_fetch_func(fetch, [])()


def test_fetch_missing_labels():
    samples = [
        Sample(
            {
                "id": "/kubepods/podf89b6c09-11a3-11e8-a084-080027352a02/3328c17bfd22f1a82fcdf8707c2f8f040c462e548c24780079bba95d276d93e1",
                "image": "gcr.io/google_containers/addon-resizer@sha256:e77acf80697a70386c04ae3ab494a7b13917cb30de2326dcf1a10a5118eddabe",
                "name": "k8s_addon-resizer_kube-state-metrics-57f4659995-6n2qq_kube-system_f89b6c09-11a3-11e8-a084-080027352a02_17",
                "namespace": "kube-system",
                "pod_name": "kube-state-metrics-57f4659995-6n2qq",
            },
            1.7788928e07,
        ),
        Sample(
            {
                "container_name": "dnsmasq",
                "id": "/kubepods/burstable/podbb3b914c-11a3-11e8-a084-080027352a02/81de1e9aba1c051a2f9780a5db594a899c9e4e76613d4c95da4561cc48e8658f",
                "image": "sha256:459944ce8cc4f08ebade5c05bb884e4da053d73e61ec6afe82a0b1687317254c",
                "name": "k8s_dnsmasq_kube-dns-54cccfbdf8-dznm7_kube-system_bb3b914c-11a3-11e8-a084-080027352a02_13",
                "pod_name": "kube-dns-54cccfbdf8-dznm7",
            },
            1.4655488e07,
        ),
        Sample(
            {
                "container_name": "grafana",
                "id": "/kubepods/besteffort/podbb233a6b-11a3-11e8-a084-080027352a02/7f092105225a729f4917aa6950b5b90236c720fc411eee80ba9f7ca0f639525f",
                "image": "k8s.gcr.io/heapster-grafana-amd64@sha256:4a472eb4df03f4f557d80e7c6b903d9c8fe31493108b99fbd6da6540b5448d70",
                "name": "k8s_grafana_influxdb-grafana-rsmwp_kube-system_bb233a6b-11a3-11e8-a084-080027352a02_17",
                "namespace": "kube-system",
            },
            2.5956352e07,
        ),
        Sample(
            {
                "container_name": "heapster",
                "image": "k8s.gcr.io/heapster-amd64@sha256:da3288b0fe2312c621c2a6d08f24ccc56183156ec70767987501287db4927b9d",
                "name": "k8s_heapster_heapster-5mz5f_kube-system_bb142c1b-11a3-11e8-a084-080027352a02_15",
                "namespace": "kube-system",
                "pod_name": "heapster-5mz5f",
            },
            3.0572544e07,
        ),
        Sample(
            {
                "container_name": "influxdb",
                "id": "/kubepods/besteffort/podbb233a6b-11a3-11e8-a084-080027352a02/fd0ca055e308e5d11b0c8fbf273b733d1166aa2823bf7fd724a6b70c72959774",
                "name": "k8s_influxdb_influxdb-grafana-rsmwp_kube-system_bb233a6b-11a3-11e8-a084-080027352a02_17",
                "namespace": "kube-system",
                "pod_name": "influxdb-grafana-rsmwp",
            },
            7.4510336e07,
        ),
    ]

    error = _capture_errors([MetricFamily("container_memory_usage_bytes", samples)])

    assert error.recoverable is True
    assert sorted(str(e) for e in error.errors) == sorted(
        [
            "container name not found in cAdvisor metrics",
            "namespace not found in cAdvisor metrics",
            "pod name not found in cAdvisor metrics",
            "container id not found in cAdvisor metrics",
            "container image not found in cAdvisor metrics",
        ]
    )
    assert error.groups["container"] == {
        "kube-system_influxdb-grafana-rsmwp_influxdb": {
            "containerID": "fd0ca055e308e5d11b0c8fbf273b733d1166aa2823bf7fd724a6b70c72959774",
        }
    }