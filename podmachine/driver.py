"""Driver - docker-machine host lifecycle on top of Kubernetes pods.

Each host is one pod plus one secret carrying its cloud-init seed. The
driver holds no lock: callers must not run two lifecycle operations for
the same host at once. Different hosts are independent.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from kubernetes import watch
from kubernetes.client.rest import ApiException

from . import objects
from .applier import Applier
from .cluster import Cluster, resolve_cluster
from .config import DEFAULT_USER, DOCKER_PORT, DriverOptions, read_user_data
from .host import HostRecord, LogicalHost, RuntimeStatus
from .keys import generate_ssh_key, read_public_key
from .state import HostPhase
from .waiting import DEFAULT_TIMEOUT, await_address

logger = logging.getLogger(__name__)

SSH_KEY_NAME = "id_rsa"


def join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


class Driver:
    """Lifecycle controller for one machine."""

    def __init__(self, machine_name: str, store_path: Path, options: DriverOptions, cluster: Cluster,
                 timeout: float = DEFAULT_TIMEOUT, watch_factory=watch.Watch):
        self.machine_name = machine_name
        self.store_path = Path(store_path)
        self.options = options
        self.timeout = timeout
        self.watch_factory = watch_factory
        self.status = RuntimeStatus()
        self._cluster = cluster

    @classmethod
    def from_record(cls, record: HostRecord, cluster: Optional[Cluster] = None, **kwargs) -> "Driver":
        """Build a driver from a persisted record, resolving credentials if needed."""
        options = DriverOptions(
            image=record.image,
            userdata=record.userdata,
            kube_token=record.kube_token,
            driver_name=record.driver_name,
            ssh_user=record.ssh_user,
            ssh_port=record.ssh_port,
        )
        if cluster is None:
            cluster = resolve_cluster(options.kube_token)
        return cls(record.machine_name, Path(record.store_path), options, cluster, **kwargs)

    def to_record(self) -> HostRecord:
        return HostRecord(
            machine_name=self.machine_name,
            store_path=str(self.store_path),
            driver_name=self.options.driver_name,
            image=self.options.image,
            userdata=self.options.userdata,
            kube_token=self.options.kube_token,
            ssh_user=self.options.ssh_user,
            ssh_port=self.options.ssh_port,
        )

    @property
    def cluster(self) -> Cluster:
        return self._cluster

    @property
    def host(self) -> LogicalHost:
        return LogicalHost(name=self.machine_name, namespace=self._cluster.namespace, image=self.options.image)

    def reload(self) -> None:
        """Re-resolve cluster credentials, picking up changed config."""
        self._cluster = resolve_cluster(self.options.kube_token)
        logger.info(f"Reloaded cluster config, namespace {self._cluster.namespace}")

    # --- docker-machine surface ---

    def driver_name(self) -> str:
        return self.options.driver_name

    def get_ssh_hostname(self) -> str:
        return self.get_ip()

    def get_ssh_username(self) -> str:
        return self.options.ssh_user or DEFAULT_USER

    def get_ssh_port(self) -> int:
        return self.options.ssh_port

    def get_ssh_key_path(self) -> Path:
        return self.store_path / SSH_KEY_NAME

    def pre_create_check(self) -> None:
        """Fail early if the user-data file is configured but unreadable."""
        read_user_data(self.options.userdata)

    # --- lifecycle ---

    def create(self) -> None:
        """Generate the machine's SSH keypair. Nothing is sent to the cluster."""
        logger.info(f"Generating SSH key for {self.machine_name}")
        generate_ssh_key(self.get_ssh_key_path())

    def start(self) -> None:
        """Recreate the host's pod and secret and wait for the pod IP.

        Always tears down first, so a half-applied earlier attempt is
        replaced rather than patched.
        """
        user_data = read_user_data(self.options.userdata)
        meta_data = json.dumps({"public-keys": [read_public_key(self.get_ssh_key_path())]}).encode()

        self.stop()

        host = self.host
        desired = objects.build(host.namespace, host.name, host.image, user_data, meta_data,
                                self.options.driver_name)
        logger.info(f"Starting {host} with image {host.image}")
        self._applier().converge(desired)

        address = await_address(self._cluster.core, host.namespace, host.name, self.timeout, self.watch_factory)
        self.status.assign(address)
        logger.info(f"{host} is up at {address}")

    def stop(self) -> None:
        """Delete the host's pod (and with it, its secret)."""
        host = self.host
        try:
            self._applier().converge(objects.build_absent(host.namespace, host.name, self.options.driver_name))
        finally:
            self.status.clear()
        logger.info(f"Stopped {host}")

    def restart(self) -> None:
        self.stop()
        self.start()

    def kill(self) -> None:
        self.stop()

    def remove(self) -> None:
        self.stop()

    # --- queries ---

    def get_state(self) -> HostPhase:
        """Current host phase; a missing pod is ABSENT rather than an error."""
        host = self.host
        try:
            pod = self._cluster.core.read_namespaced_pod(name=host.name, namespace=host.namespace,
                                                       _request_timeout=self.timeout)
        except ApiException as e:
            if e.status == 404:
                return HostPhase.ABSENT
            raise
        return HostPhase.from_pod_phase(pod.status.phase if pod.status else None)

    def get_ip(self) -> str:
        """The host's IP, waiting for it if start() has not recorded one."""
        if self.status.address:
            return self.status.address
        host = self.host
        return await_address(self._cluster.core, host.namespace, host.name, self.timeout, self.watch_factory)

    def get_url(self) -> str:
        """URL of the remote docker daemon."""
        return f"tcp://{join_host_port(self.get_ip(), DOCKER_PORT)}"

    def _applier(self) -> Applier:
        return Applier(self._cluster.core, self.timeout, self.watch_factory)
