"""Bounded waits on a single pod, driven by a watch stream.

Each wait opens exactly one watch session and always stops it before
returning, whether it found what it was looking for, ran out of time, or
was interrupted. The watch starts from the resource version of the point
lookup that precedes it, so a change landing between the two is still
delivered.
"""

import logging
import math
import time

from kubernetes import client, watch
from kubernetes.client.rest import ApiException
from urllib3.exceptions import TimeoutError as ClientTimeoutError

from .errors import AwaitTimeoutError, HostNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300

# Server-side watch timeout, capped by the caller's deadline
WATCH_TIMEOUT_SECONDS = 600

# Client-side slack past the server timeout before a silent stream is abandoned
REQUEST_TIMEOUT_MARGIN = 5


def _remaining(deadline: float) -> float:
    return max(0.0, deadline - time.monotonic())


def request_timeout(deadline: float) -> float:
    """Client-side timeout for one API call made under a deadline."""
    return max(1.0, _remaining(deadline))


def _stream(w, core, namespace: str, name: str, deadline: float, resource_version=None):
    """Watch events for one named pod until the server closes the stream."""
    timeout_seconds = max(1, min(WATCH_TIMEOUT_SECONDS, math.ceil(_remaining(deadline))))
    kwargs = {}
    if resource_version:
        kwargs["resource_version"] = resource_version
    return w.stream(
        core.list_namespaced_pod,
        namespace=namespace,
        field_selector=f"metadata.name={name}",
        timeout_seconds=timeout_seconds,
        _request_timeout=timeout_seconds + REQUEST_TIMEOUT_MARGIN,
        **kwargs,
    )


def _read_pod(core, namespace: str, name: str, deadline: float):
    """Point lookup that turns a 404 into HostNotFoundError."""
    try:
        return core.read_namespaced_pod(name=name, namespace=namespace,
                                        _request_timeout=request_timeout(deadline))
    except ApiException as e:
        if e.status == 404:
            raise HostNotFoundError(namespace, name) from e
        raise


def _pod_ip(pod) -> str:
    return (pod.status.pod_ip if pod.status else None) or ""


def _resource_version(pod):
    return pod.metadata.resource_version if pod.metadata else None


def await_address(core, namespace: str, name: str, timeout: float = DEFAULT_TIMEOUT,
                  watch_factory=watch.Watch) -> str:
    """Block until the pod reports an IP and return it.

    Args:
        core: CoreV1Api (or compatible) client
        namespace: Pod namespace
        name: Pod name
        timeout: Hard deadline in seconds
        watch_factory: Callable returning a watch object with stream()/stop()

    Returns:
        The first non-empty pod IP observed

    Raises:
        HostNotFoundError: Pod does not exist, or was deleted while waiting
        AwaitTimeoutError: No IP before the deadline or the stream closed
        ApiException: Backend failure, unmodified
    """
    deadline = time.monotonic() + timeout
    current = _read_pod(core, namespace, name, deadline)
    if _pod_ip(current):
        return _pod_ip(current)

    w = watch_factory()
    try:
        for event in _stream(w, core, namespace, name, deadline, _resource_version(current)):
            pod = event.get("object")
            if not isinstance(pod, client.V1Pod):
                logger.warning(f"Ignoring {event.get('type')} event without a pod for {namespace}/{name}")
                continue

            if event.get("type") == "DELETED":
                raise HostNotFoundError(namespace, name)

            ip = _pod_ip(pod)
            logger.debug(f"{event.get('type')} {namespace}/{name} ip={ip!r}")
            if ip:
                return ip

            if _remaining(deadline) <= 0:
                break
    except ClientTimeoutError:
        logger.warning(f"Watch on {namespace}/{name} went silent, giving up")
    finally:
        w.stop()

    raise AwaitTimeoutError(namespace, name, timeout)


def await_deleted(core, namespace: str, name: str, timeout: float = DEFAULT_TIMEOUT,
                  watch_factory=watch.Watch) -> None:
    """Block until the pod no longer exists.

    Raises:
        AwaitTimeoutError: Pod still present at the deadline
        ApiException: Backend failure, unmodified
    """
    deadline = time.monotonic() + timeout
    try:
        current = _read_pod(core, namespace, name, deadline)
    except HostNotFoundError:
        return

    w = watch_factory()
    try:
        for event in _stream(w, core, namespace, name, deadline, _resource_version(current)):
            if event.get("type") == "DELETED":
                logger.debug(f"Pod {namespace}/{name} deleted")
                return
            if _remaining(deadline) <= 0:
                break
    except ClientTimeoutError:
        logger.warning(f"Watch on {namespace}/{name} went silent, checking once more")
    finally:
        w.stop()

    try:
        _read_pod(core, namespace, name, deadline)
    except HostNotFoundError:
        return
    raise AwaitTimeoutError(namespace, name, timeout, waiting_for="deletion")
