"""Declarative apply of a host's object set.

The applier makes the cluster match a DesiredObjectSet: create-or-replace
when the set carries an image, delete everything the host owns when it
does not. Ownership is tracked with the host labels set by the object
builder, and the secret carries an owner reference to the pod so the
garbage collector removes it together with the pod.
"""

import copy
import logging

from kubernetes import watch
from kubernetes.client.rest import ApiException

from .objects import DesiredObjectSet, owner_reference
from .waiting import DEFAULT_TIMEOUT, await_deleted

logger = logging.getLogger(__name__)


class Applier:
    """Converges one host's pod and secret inside a single namespace.

    Every API call carries a client-side timeout of ``timeout`` seconds.
    """

    def __init__(self, core, timeout: float = DEFAULT_TIMEOUT, watch_factory=watch.Watch):
        self.core = core
        self.timeout = timeout
        self.watch_factory = watch_factory

    def converge(self, desired: DesiredObjectSet) -> None:
        """Make the cluster match the desired set.

        Backend errors propagate unmodified; nothing is retried here.
        """
        if desired.is_absent:
            self.prune(desired)
        else:
            self.apply(desired)

    def apply(self, desired: DesiredObjectSet) -> None:
        """Create or replace the pod, then the secret owned by it."""
        logger.info(f"Applying pod and secret {desired.namespace}/{desired.name}")
        pod = self._apply_pod(desired)

        secret = copy.deepcopy(desired.secret)
        secret["metadata"]["ownerReferences"] = [owner_reference(pod)]
        self._apply_secret(desired.namespace, secret)

        self._delete_stale(desired)

    def prune(self, desired: DesiredObjectSet) -> None:
        """Delete every object this host owns and wait for the pod to go.

        Secrets owned by a pod are left to the garbage collector; only
        orphaned secrets (e.g. from a half-finished apply) are deleted here.
        """
        namespace, selector = desired.namespace, desired.label_selector()

        pods = self._list_pods(namespace, selector)
        for pod in pods:
            self._delete_pod(namespace, pod.metadata.name)

        for secret in self._list_secrets(namespace, selector):
            if not secret.metadata.owner_references:
                self._delete_secret(namespace, secret.metadata.name)

        for pod in pods:
            await_deleted(self.core, namespace, pod.metadata.name, self.timeout, self.watch_factory)

    def _apply_pod(self, desired: DesiredObjectSet):
        namespace, name = desired.namespace, desired.name
        try:
            return self._create_pod(desired)
        except ApiException as e:
            if e.status != 409:
                logger.error(f"Failed to create pod {namespace}/{name}: {e.reason}")
                raise

        # Pod specs are immutable, so a same-named pod is always replaced
        try:
            existing = self.core.read_namespaced_pod(name=name, namespace=namespace,
                                                     _request_timeout=self.timeout)
        except ApiException as e:
            if e.status != 404:
                raise
            return self._create_pod(desired)

        if existing.metadata.deletion_timestamp:
            logger.info(f"Pod {namespace}/{name} is terminating, waiting before recreate")
        else:
            logger.info(f"Pod {namespace}/{name} already exists, replacing it")
            self._delete_pod(namespace, name)
        await_deleted(self.core, namespace, name, self.timeout, self.watch_factory)
        return self._create_pod(desired)

    def _create_pod(self, desired: DesiredObjectSet):
        return self.core.create_namespaced_pod(namespace=desired.namespace, body=desired.pod,
                                               _request_timeout=self.timeout)

    def _apply_secret(self, namespace: str, secret: dict) -> None:
        name = secret["metadata"]["name"]
        try:
            self.core.create_namespaced_secret(namespace=namespace, body=secret,
                                               _request_timeout=self.timeout)
        except ApiException as e:
            if e.status != 409:
                logger.error(f"Failed to create secret {namespace}/{name}: {e.reason}")
                raise
            self.core.replace_namespaced_secret(name=name, namespace=namespace, body=secret,
                                                _request_timeout=self.timeout)

    def _delete_stale(self, desired: DesiredObjectSet) -> None:
        """Delete owned objects that are no longer part of the desired set."""
        namespace, selector, keep = desired.namespace, desired.label_selector(), desired.keys()

        for pod in self._list_pods(namespace, selector):
            if ("Pod", pod.metadata.name) not in keep:
                self._delete_pod(namespace, pod.metadata.name)

        for secret in self._list_secrets(namespace, selector):
            if ("Secret", secret.metadata.name) not in keep:
                self._delete_secret(namespace, secret.metadata.name)

    def _list_pods(self, namespace: str, selector: str):
        return self.core.list_namespaced_pod(namespace=namespace, label_selector=selector,
                                             _request_timeout=self.timeout).items

    def _list_secrets(self, namespace: str, selector: str):
        return self.core.list_namespaced_secret(namespace=namespace, label_selector=selector,
                                                _request_timeout=self.timeout).items

    def _delete_pod(self, namespace: str, name: str) -> None:
        logger.info(f"Deleting pod {namespace}/{name}")
        try:
            self.core.delete_namespaced_pod(
                name=name,
                namespace=namespace,
                grace_period_seconds=0,
                propagation_policy="Background",
                _request_timeout=self.timeout,
            )
        except ApiException as e:
            if e.status != 404:
                raise

    def _delete_secret(self, namespace: str, name: str) -> None:
        logger.info(f"Deleting secret {namespace}/{name}")
        try:
            self.core.delete_namespaced_secret(name=name, namespace=namespace,
                                               _request_timeout=self.timeout)
        except ApiException as e:
            if e.status != 404:
                raise
