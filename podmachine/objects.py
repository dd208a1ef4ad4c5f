"""Desired Kubernetes objects for a host: one pod plus one secret."""

import base64
from dataclasses import dataclass
from typing import Optional

# Labels tying objects to the host that owns them
MANAGED_BY_LABEL = "podmachine.io/managed-by"
HOST_LABEL = "podmachine.io/host"

CONTAINER_NAME = "machine"
CACHE_CLAIM = "k8-core"
CACHE_MOUNT_PATH = "/var/lib/rancher"
SEED_DIR = "/var/lib/cloud/seed/nocloud"
META_DATA_KEY = "meta-data"
USER_DATA_KEY = "user-data"
META_DATA_PATH = f"{SEED_DIR}/{META_DATA_KEY}"
USER_DATA_PATH = f"{SEED_DIR}/{USER_DATA_KEY}"
MEMORY_LIMIT = "2Gi"

PORTS = [
    ("ssh", 22),
    ("kube-api", 6443),
    ("endpoint", 9435),
    ("https", 443),
    ("http", 80),
]


@dataclass(frozen=True)
class DesiredObjectSet:
    """The pod and secret a host should have in the cluster.

    A pod with an empty image is the "absent" intent: the objects are
    still structurally valid so the applier can identify them by
    kind/namespace/name, but converging them means deleting.
    """

    pod: dict
    secret: dict

    @property
    def name(self) -> str:
        return self.pod["metadata"]["name"]

    @property
    def namespace(self) -> str:
        return self.pod["metadata"]["namespace"]

    @property
    def is_absent(self) -> bool:
        return not self.pod["spec"]["containers"][0]["image"]

    @property
    def labels(self) -> dict:
        return dict(self.pod["metadata"]["labels"])

    def label_selector(self) -> str:
        """Selector matching every object owned by this host."""
        return ",".join(f"{k}={v}" for k, v in sorted(self.labels.items()))

    def keys(self) -> set:
        """(kind, name) identities of the objects in this set."""
        return {(self.pod["kind"], self.name), (self.secret["kind"], self.secret["metadata"]["name"])}


def _encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _labels(name: str, driver_name: str) -> dict:
    return {MANAGED_BY_LABEL: driver_name, HOST_LABEL: name}


def build_pod(namespace: str, name: str, image: str, driver_name: str = "kubernetes") -> dict:
    """Build the pod manifest for a host.

    Cloud-init seed files are mounted from the host's secret via subPath,
    never embedded in the pod, so the pod spec does not change with the
    payloads.
    """
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": _labels(name, driver_name),
        },
        "spec": {
            "hostname": name,
            # Lifecycle is driven by start/stop, not by the kubelet
            "restartPolicy": "Never",
            "automountServiceAccountToken": False,
            "terminationGracePeriodSeconds": 0,
            "volumes": [
                {
                    "name": "cache-volume",
                    "persistentVolumeClaim": {"claimName": CACHE_CLAIM},
                },
                {
                    "name": "data",
                    "secret": {"secretName": name},
                },
            ],
            "containers": [
                {
                    "name": CONTAINER_NAME,
                    "image": image,
                    "ports": [{"name": port_name, "containerPort": port} for port_name, port in PORTS],
                    "volumeMounts": [
                        {"name": "cache-volume", "mountPath": CACHE_MOUNT_PATH},
                        {"name": "data", "mountPath": META_DATA_PATH, "subPath": META_DATA_KEY},
                        {"name": "data", "mountPath": USER_DATA_PATH, "subPath": USER_DATA_KEY},
                    ],
                    "resources": {"limits": {"memory": MEMORY_LIMIT}},
                    "securityContext": {"privileged": True},
                    "stdin": True,
                    "stdinOnce": True,
                    "tty": True,
                }
            ],
        },
    }


def build_secret(
    namespace: str,
    name: str,
    user_data: Optional[bytes],
    meta_data: Optional[bytes],
    driver_name: str = "kubernetes",
) -> dict:
    """Build the cloud-init secret for a host.

    Both keys are always present when any payload is given, since a
    subPath mount of a missing key keeps the container from starting.
    """
    data = {}
    if user_data is not None or meta_data is not None:
        data = {
            USER_DATA_KEY: _encode(user_data or b""),
            META_DATA_KEY: _encode(meta_data or b""),
        }
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "Opaque",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": _labels(name, driver_name),
        },
        "data": data,
    }


def build(
    namespace: str,
    name: str,
    image: str,
    user_data: Optional[bytes],
    meta_data: Optional[bytes],
    driver_name: str = "kubernetes",
) -> DesiredObjectSet:
    """Build the desired object set for a host."""
    return DesiredObjectSet(
        pod=build_pod(namespace, name, image, driver_name),
        secret=build_secret(namespace, name, user_data, meta_data, driver_name),
    )


def build_absent(namespace: str, name: str, driver_name: str = "kubernetes") -> DesiredObjectSet:
    """Build the object set expressing "this host should not exist"."""
    return build(namespace, name, "", None, None, driver_name)


def owner_reference(pod) -> dict:
    """Owner reference pointing at a created pod (V1Pod or manifest dict)."""
    if isinstance(pod, dict):
        metadata = pod["metadata"]
        name, uid = metadata["name"], metadata.get("uid")
    else:
        name, uid = pod.metadata.name, pod.metadata.uid
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "name": name,
        "uid": uid,
        "blockOwnerDeletion": True,
    }
