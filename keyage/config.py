"""
Configuration
Locates the store and reads its config.toml.

The configuration holds two strings: the path of the identity file and the
recipient public key. The store root comes from the KEYAGE_STORE environment
variable, or a "keyage-store" directory in the platform's local data
directory. Both are resolved here, once, and handed to SecretStore as an
explicit StoreConfig; the store itself never looks at the environment.
"""

import logging
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

import platformdirs
import tomli_w

from keyage.errors import ConfigLoadError, StoreNotFoundError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.toml"
STORE_DIR_VAR_NAME = "KEYAGE_STORE"
DEFAULT_STORE_DIR_NAME = "keyage-store"


def resolve_store_root(environ: dict | None = None) -> Path:
    """Return the store root from the environment or the platform default."""
    environ = os.environ if environ is None else environ

    configured = environ.get(STORE_DIR_VAR_NAME)
    if configured:
        root = Path(configured).expanduser()
    else:
        data_dir = platformdirs.user_data_dir(roaming=False)
        if not data_dir:
            raise StoreNotFoundError("The path to the local data dir could not be found")
        root = Path(data_dir) / DEFAULT_STORE_DIR_NAME

    root = root.absolute()
    logger.debug("store root: %s", root)
    return root


@dataclass
class Configuration:
    """Contents of config.toml. Both fields may be missing on disk."""
    identifier: str | None = None
    recipient: str | None = None

    @classmethod
    def load(cls, path: str | Path) -> "Configuration":
        path = Path(path)
        try:
            with path.open("rb") as f:
                data = tomllib.load(f)
        except FileNotFoundError as e:
            raise ConfigLoadError(f"No configuration found at {path}") from e
        except OSError as e:
            raise ConfigLoadError(f"Cannot read {path}: {e.strerror}") from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigLoadError(f"Invalid TOML in {path}: {e}") from e

        for key in ("identifier", "recipient"):
            if key in data and not isinstance(data[key], str):
                raise ConfigLoadError(f"Invalid {key} field: expected a string")

        return cls(identifier=data.get("identifier"), recipient=data.get("recipient"))

    def save(self, path: str | Path) -> None:
        data = {
            key: getattr(self, key)
            for key in ("identifier", "recipient")
            if getattr(self, key) is not None
        }
        try:
            Path(path).write_text(tomli_w.dumps(data), encoding="utf-8")
        except OSError as e:
            raise ConfigLoadError(f"Cannot write {path}: {e.strerror}") from e


@dataclass(frozen=True)
class StoreConfig:
    """
    Everything a SecretStore needs.

    Args:
        root: Absolute store root directory.
        identity_path: File holding the private identity.
        recipient: Public key string entries are sealed for.
    """
    root: Path
    identity_path: Path
    recipient: str

    @classmethod
    def from_root(cls, root: str | Path) -> "StoreConfig":
        """Read root/config.toml. Both fields are required."""
        root = Path(root)
        configuration = Configuration.load(root / CONFIG_FILE_NAME)

        if not configuration.recipient:
            raise ConfigLoadError("Invalid recipient field")
        if not configuration.identifier:
            raise ConfigLoadError("Invalid identity field")

        identity_path = Path(configuration.identifier).expanduser()
        if not identity_path.is_absolute():
            identity_path = root / identity_path

        return cls(root=root, identity_path=identity_path, recipient=configuration.recipient)
