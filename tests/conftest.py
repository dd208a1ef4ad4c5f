"""Shared test fixtures: an in-memory stand-in for the Kubernetes core API."""

import copy
import itertools
from dataclasses import dataclass
from typing import Any

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from podmachine.cluster import Cluster
from podmachine.config import DriverOptions
from podmachine.driver import Driver


def _matches(labels, selector):
    if not selector:
        return True
    labels = labels or {}
    for term in selector.split(","):
        key, value = term.split("=", 1)
        if labels.get(key) != value:
            return False
    return True


class FakeCore:
    """The subset of CoreV1Api podmachine uses, with owner-reference cascade."""

    def __init__(self):
        self.pods = {}
        self.pod_manifests = {}
        self.secrets = {}
        self.ips = {}
        self.calls = []
        self.failures = {}
        self._uids = itertools.count(1)
        self._versions = itertools.count(100)

    def _call(self, method, **kwargs):
        self.calls.append((method, kwargs))
        if method in self.failures:
            raise self.failures[method]

    def called(self, method):
        return [kwargs for name, kwargs in self.calls if name == method]

    @staticmethod
    def _not_found():
        return ApiException(status=404, reason="Not Found")

    # --- pods ---

    def read_namespaced_pod(self, name, namespace, **kwargs):
        self._call("read_namespaced_pod", name=name, namespace=namespace, **kwargs)
        if (namespace, name) not in self.pods:
            raise self._not_found()
        return self.pods[(namespace, name)]

    def create_namespaced_pod(self, namespace, body, **kwargs):
        self._call("create_namespaced_pod", namespace=namespace, body=body, **kwargs)
        name = body["metadata"]["name"]
        if (namespace, name) in self.pods:
            raise ApiException(status=409, reason="AlreadyExists")
        pod = client.V1Pod(
            metadata=client.V1ObjectMeta(
                name=name,
                namespace=namespace,
                labels=dict(body["metadata"].get("labels") or {}),
                uid=f"uid-{next(self._uids)}",
                resource_version=str(next(self._versions)),
            ),
            status=client.V1PodStatus(phase="Pending"),
        )
        self.pods[(namespace, name)] = pod
        self.pod_manifests[(namespace, name)] = copy.deepcopy(body)
        return pod

    def delete_namespaced_pod(self, name, namespace, **kwargs):
        self._call("delete_namespaced_pod", name=name, namespace=namespace, **kwargs)
        pod = self.pods.pop((namespace, name), None)
        if pod is None:
            raise self._not_found()
        self.pod_manifests.pop((namespace, name), None)
        # Garbage collector: secrets owned by this pod go with it
        for key, secret in list(self.secrets.items()):
            refs = secret.metadata.owner_references or []
            if any(ref.uid == pod.metadata.uid for ref in refs):
                del self.secrets[key]

    def list_namespaced_pod(self, namespace, label_selector=None, **kwargs):
        self._call("list_namespaced_pod", namespace=namespace, label_selector=label_selector, **kwargs)
        items = [
            pod for (ns, _), pod in self.pods.items()
            if ns == namespace and _matches(pod.metadata.labels, label_selector)
        ]
        return client.V1PodList(items=items)

    def set_pod_status(self, namespace, name, phase, ip=None):
        pod = self.pods[(namespace, name)]
        pod.status = client.V1PodStatus(phase=phase, pod_ip=ip)
        pod.metadata.resource_version = str(next(self._versions))
        return pod

    # --- secrets ---

    def _secret(self, namespace, body):
        meta = body["metadata"]
        refs = [
            client.V1OwnerReference(
                api_version=ref["apiVersion"],
                kind=ref["kind"],
                name=ref["name"],
                uid=ref["uid"],
                block_owner_deletion=ref.get("blockOwnerDeletion"),
            )
            for ref in meta.get("ownerReferences") or []
        ]
        return client.V1Secret(
            metadata=client.V1ObjectMeta(
                name=meta["name"],
                namespace=namespace,
                labels=dict(meta.get("labels") or {}),
                owner_references=refs or None,
            ),
            data=dict(body.get("data") or {}),
        )

    def read_namespaced_secret(self, name, namespace, **kwargs):
        self._call("read_namespaced_secret", name=name, namespace=namespace, **kwargs)
        if (namespace, name) not in self.secrets:
            raise self._not_found()
        return self.secrets[(namespace, name)]

    def create_namespaced_secret(self, namespace, body, **kwargs):
        self._call("create_namespaced_secret", namespace=namespace, body=body, **kwargs)
        name = body["metadata"]["name"]
        if (namespace, name) in self.secrets:
            raise ApiException(status=409, reason="AlreadyExists")
        self.secrets[(namespace, name)] = self._secret(namespace, body)
        return self.secrets[(namespace, name)]

    def replace_namespaced_secret(self, name, namespace, body, **kwargs):
        self._call("replace_namespaced_secret", name=name, namespace=namespace, body=body, **kwargs)
        if (namespace, name) not in self.secrets:
            raise self._not_found()
        self.secrets[(namespace, name)] = self._secret(namespace, body)
        return self.secrets[(namespace, name)]

    def delete_namespaced_secret(self, name, namespace, **kwargs):
        self._call("delete_namespaced_secret", name=name, namespace=namespace, **kwargs)
        if self.secrets.pop((namespace, name), None) is None:
            raise self._not_found()

    def list_namespaced_secret(self, namespace, label_selector=None, **kwargs):
        self._call("list_namespaced_secret", namespace=namespace, label_selector=label_selector, **kwargs)
        items = [
            secret for (ns, _), secret in self.secrets.items()
            if ns == namespace and _matches(secret.metadata.labels, label_selector)
        ]
        return client.V1SecretList(items=items)


def snapshot(pod):
    return client.V1Pod(
        metadata=pod.metadata,
        status=client.V1PodStatus(phase=pod.status.phase, pod_ip=pod.status.pod_ip),
    )


def simulated_events(core, namespace, name):
    """What the cluster would stream: the pod as it is, then with its IP if one is due."""
    pod = core.pods.get((namespace, name))
    if pod is None:
        return []
    events = [{"type": "ADDED", "object": snapshot(pod)}]
    ip = core.ips.get(name)
    if ip:
        core.set_pod_status(namespace, name, "Running", ip)
        events.append({"type": "MODIFIED", "object": snapshot(core.pods[(namespace, name)])})
    return events


class FakeWatch:
    """Stands in for kubernetes.watch.Watch."""

    def __init__(self, core, script):
        self.core = core
        self.script = script
        self.stopped = False
        self.stream_kwargs = None

    def stream(self, func, **kwargs):
        self.stream_kwargs = kwargs
        name = kwargs["field_selector"].split("=", 1)[1]
        for event in self.script(self.core, kwargs["namespace"], name):
            if self.stopped:
                return
            yield event

    def stop(self):
        self.stopped = True


class WatchFactory:
    """Callable passed as watch_factory; remembers every watch it hands out."""

    def __init__(self, core):
        self.core = core
        self.script = simulated_events
        self.created = []

    def __call__(self):
        w = FakeWatch(self.core, self.script)
        self.created.append(w)
        return w


@dataclass(frozen=True)
class FakeCluster(Cluster):
    fake_core: Any = None

    @property
    def core(self):
        return self.fake_core


@pytest.fixture
def core():
    return FakeCore()


@pytest.fixture
def watches(core):
    return WatchFactory(core)


@pytest.fixture
def cluster(core):
    return FakeCluster(namespace="test-ns", api_client=None, fake_core=core)


@pytest.fixture
def store(tmp_path):
    """Machine store directory holding an existing keypair."""
    path = tmp_path / "machines" / "demo"
    path.mkdir(parents=True)
    (path / "id_rsa").write_text("PRIVATE\n")
    (path / "id_rsa.pub").write_text("ssh-rsa AAAATEST demo\n")
    return path


@pytest.fixture
def driver(store, cluster, watches):
    return Driver("demo", store, DriverOptions(image="img:v1"), cluster, timeout=5, watch_factory=watches)
