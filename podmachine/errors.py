"""Exception hierarchy for podmachine.

Backend communication failures are not wrapped: they surface as
``kubernetes.client.rest.ApiException`` so the caller can decide on retry.
"""


class PodMachineError(Exception):
    """Base exception for podmachine errors."""


class ConfigError(PodMachineError):
    """Configuration error (credentials, user-data, key files)."""


class KeyGenerationError(PodMachineError):
    """SSH keypair could not be generated."""


class HostNotFoundError(PodMachineError):
    """The host's workload does not exist in the cluster."""

    def __init__(self, namespace: str, name: str):
        self.namespace = namespace
        self.name = name
        super().__init__(f"Host {namespace}/{name} not found")


class AwaitTimeoutError(PodMachineError):
    """Waiting on a workload exceeded its deadline."""

    def __init__(self, namespace: str, name: str, timeout: float, waiting_for: str = "IP"):
        self.namespace = namespace
        self.name = name
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout:g}s waiting for {waiting_for} of {namespace}/{name}")
