"""Cluster credentials - turn ambient or supplied config into an API client."""

import base64
import binascii
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml
from kubernetes import client, config

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "default"
SERVICE_ACCOUNT_NAMESPACE = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")


@dataclass(frozen=True)
class Cluster:
    """A resolved cluster: the working namespace and an authenticated client."""

    namespace: str
    api_client: client.ApiClient

    @property
    def core(self) -> client.CoreV1Api:
        return client.CoreV1Api(self.api_client)


def decode_kubeconfig(token: str) -> dict:
    """Decode a base64 kubeconfig blob into a kubeconfig mapping."""
    try:
        raw = base64.b64decode("".join(token.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigError(f"Cannot decode base64 kubeconfig: {e}") from e

    try:
        kubeconfig = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Decoded kubeconfig is not valid YAML: {e}") from e

    if not isinstance(kubeconfig, dict):
        raise ConfigError("Decoded kubeconfig is not a mapping")
    return kubeconfig


def context_namespace(kubeconfig: dict, context: Optional[str] = None) -> str:
    """Namespace of the named (or current) context, or "default"."""
    name = context or kubeconfig.get("current-context")
    for entry in kubeconfig.get("contexts") or []:
        if entry.get("name") == name:
            return (entry.get("context") or {}).get("namespace") or DEFAULT_NAMESPACE
    return DEFAULT_NAMESPACE


def _from_token(token: str) -> Cluster:
    kubeconfig = decode_kubeconfig(token)
    try:
        api_client = config.new_client_from_config_dict(kubeconfig, persist_config=False)
    except (config.ConfigException, KeyError, TypeError) as e:
        raise ConfigError(f"Invalid kubeconfig in token: {e}") from e
    return Cluster(namespace=context_namespace(kubeconfig), api_client=api_client)


def _from_kubeconfig() -> Cluster:
    api_client = config.new_client_from_config(persist_config=False)
    _, active = config.list_kube_config_contexts()
    namespace = (active or {}).get("context", {}).get("namespace") or DEFAULT_NAMESPACE
    return Cluster(namespace=namespace, api_client=api_client)


def _from_incluster() -> Cluster:
    configuration = client.Configuration()
    config.load_incluster_config(client_configuration=configuration)
    try:
        namespace = SERVICE_ACCOUNT_NAMESPACE.read_text().strip() or DEFAULT_NAMESPACE
    except OSError:
        namespace = DEFAULT_NAMESPACE
    return Cluster(namespace=namespace, api_client=client.ApiClient(configuration))


def resolve_cluster(kube_token: str = "") -> Cluster:
    """Resolve credentials into a Cluster.

    Order: supplied token, kubeconfig loading rules (KUBECONFIG or
    ~/.kube/config), in-cluster service account.

    Raises:
        ConfigError: If no usable cluster configuration is found
    """
    if kube_token:
        cluster = _from_token(kube_token)
        logger.debug(f"Using supplied kubeconfig, namespace {cluster.namespace}")
        return cluster

    try:
        cluster = _from_kubeconfig()
        logger.debug(f"Using kubeconfig, namespace {cluster.namespace}")
        return cluster
    except config.ConfigException as e:
        logger.debug(f"No usable kubeconfig: {e}")

    try:
        cluster = _from_incluster()
        logger.debug(f"Using in-cluster config, namespace {cluster.namespace}")
        return cluster
    except config.ConfigException as e:
        raise ConfigError(f"No reachable cluster context found: {e}") from e
