"""Driver options - flags with environment-variable fallbacks."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .errors import ConfigError

DEFAULT_DRIVER_NAME = "kubernetes"
DEFAULT_IMAGE = "ghcr.io/william86370/rke2ink:systemd"
DEFAULT_USER = "sles"
DEFAULT_SSH_PORT = 22
DOCKER_PORT = 2376


@dataclass(frozen=True)
class Flag:
    """A driver create flag."""

    name: str
    env_var: str
    usage: str
    default: str = ""


FLAG_K8TOKEN = "kubernetes-k8token"
FLAG_USERDATA = "kubernetes-userdata"
FLAG_IMAGE = "kubernetes-image"

CREATE_FLAGS = [
    Flag(FLAG_K8TOKEN, "KUBERNETES_K8TOKEN", "The kubeconfig, base64 encoded"),
    Flag(FLAG_USERDATA, "KUBERNETES_USERDATA", "A user-data file to be passed to cloud-init"),
    Flag(FLAG_IMAGE, "KUBERNETES_IMAGE", "Container image to run", DEFAULT_IMAGE),
]


def flag_value(flag: Flag, values: Mapping[str, Optional[str]], environ: Mapping[str, str]) -> str:
    """Resolve a flag: explicit value, then environment, then default."""
    value = values.get(flag.name)
    if value:
        return value
    return environ.get(flag.env_var) or flag.default


@dataclass(frozen=True)
class DriverOptions:
    """Settings for one machine.

    Attributes:
        image: Container image the host pod runs
        userdata: Path to a cloud-init user-data file (optional)
        kube_token: Base64-encoded kubeconfig (optional)
        driver_name: Name reported to docker-machine and used in labels
        ssh_user: SSH login user inside the image
        ssh_port: SSH port inside the image
    """

    image: str = DEFAULT_IMAGE
    userdata: str = ""
    kube_token: str = ""
    driver_name: str = DEFAULT_DRIVER_NAME
    ssh_user: str = DEFAULT_USER
    ssh_port: int = DEFAULT_SSH_PORT

    def __post_init__(self) -> None:
        if not self.image:
            object.__setattr__(self, "image", DEFAULT_IMAGE)

    @classmethod
    def from_flags(cls, values: Mapping[str, Optional[str]], environ: Optional[Mapping[str, str]] = None,
                   **overrides) -> "DriverOptions":
        """Build options from create-flag values.

        Args:
            values: Flag name -> value, as parsed from the command line
            environ: Environment to fall back on (defaults to os.environ)
            **overrides: Any other DriverOptions fields
        """
        if environ is None:
            environ = os.environ
        by_name = {flag.name: flag for flag in CREATE_FLAGS}
        return cls(
            image=flag_value(by_name[FLAG_IMAGE], values, environ),
            userdata=flag_value(by_name[FLAG_USERDATA], values, environ),
            kube_token=flag_value(by_name[FLAG_K8TOKEN], values, environ),
            **overrides,
        )


def read_user_data(path: str) -> Optional[bytes]:
    """Read the cloud-init user-data file. Returns None if no path is set."""
    if not path:
        return None
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise ConfigError(f"Cannot read userdata file {path}: {e}") from e
