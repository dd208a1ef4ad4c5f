"""Host identity, runtime status and the on-disk host record."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

RECORD_FILE = "config.json"


@dataclass(frozen=True)
class LogicalHost:
    """Immutable identity of a host.

    The name is used for both the pod and the secret.
    """

    name: str
    namespace: str
    image: str

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Host name cannot be empty")
        if not self.namespace:
            raise ValueError("Namespace cannot be empty")

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class RuntimeStatus:
    """Mutable runtime state of a host: the address assigned by start()."""

    def __init__(self) -> None:
        self._address = ""

    @property
    def address(self) -> str:
        return self._address

    def assign(self, address: str) -> None:
        if not address:
            raise ValueError("Cannot assign an empty address")
        self._address = address

    def clear(self) -> None:
        self._address = ""


class HostRecord(BaseModel):
    """Persisted driver settings for a machine.

    The runtime address is deliberately absent, so a reloaded record can
    never report an address from a previous run.
    """

    machine_name: str
    store_path: str
    driver_name: str = "kubernetes"
    image: str = ""
    userdata: str = ""
    kube_token: str = ""
    ssh_user: str = "sles"
    ssh_port: int = 22

    @staticmethod
    def path_for(store_path: Path) -> Path:
        return store_path / RECORD_FILE

    def save(self) -> None:
        """Write config.json into the machine's store directory."""
        store = Path(self.store_path)
        store.mkdir(parents=True, exist_ok=True)
        self.path_for(store).write_text(self.model_dump_json(indent=2) + "\n")

    @classmethod
    def load(cls, store_path: Path) -> Optional["HostRecord"]:
        """Load a record. Returns None if the machine has none."""
        path = cls.path_for(store_path)
        if not path.exists():
            return None
        return cls.model_validate_json(path.read_text())
