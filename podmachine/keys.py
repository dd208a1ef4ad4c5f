"""SSH key material for a machine."""

import logging
import subprocess
from pathlib import Path

from .errors import ConfigError, KeyGenerationError

logger = logging.getLogger(__name__)


def generate_ssh_key(path: Path, bits: int = 2048) -> None:
    """Generate an RSA keypair at path (and path.pub) with ssh-keygen.

    An existing key is left untouched.

    Raises:
        KeyGenerationError: If ssh-keygen is missing or fails
    """
    if path.exists():
        logger.info(f"SSH key already exists at {path}")
        return

    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        subprocess.run(
            ["ssh-keygen", "-t", "rsa", "-b", str(bits), "-N", "", "-q", "-f", str(path)],
            capture_output=True,
            text=True,
            check=True,
        )
    except FileNotFoundError as e:
        raise KeyGenerationError("ssh-keygen not found") from e
    except subprocess.CalledProcessError as e:
        raise KeyGenerationError(f"ssh-keygen failed: {e.stderr.strip()}") from e


def read_public_key(key_path: Path) -> str:
    """Read the public half of the keypair at key_path.

    Raises:
        ConfigError: If the public key file cannot be read
    """
    pub_path = key_path.with_name(key_path.name + ".pub")
    try:
        return pub_path.read_text()
    except OSError as e:
        raise ConfigError(f"Cannot read public key {pub_path}: {e}") from e
