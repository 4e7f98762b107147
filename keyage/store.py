"""
Secret Store
Named, independently encrypted entries in a directory tree.

A SecretStore is bound to one root directory, one identity and one
recipient for its whole lifetime. Each operation resolves the entry path,
checks it against the root, does one crypto operation and one filesystem
operation. There is no locking and no rollback: concurrent writers race and
the last one wins, and a crash mid-write can leave a truncated entry (which
then fails to decrypt rather than decrypting to something wrong).
"""

import logging
import shutil
from pathlib import Path

from keyage import envelope, paths
from keyage.config import StoreConfig
from keyage.errors import (
    InvalidPathError,
    PasswordNotFoundError,
    StoreNotFoundError,
    StoreReadError,
    StoreWriteError,
)
from keyage.keys import Identity, Recipient, load_identities, parse_recipient

logger = logging.getLogger(__name__)


class SecretStore:
    """
    Encrypted entry store.

    Entries are sealed for `recipient` and opened with `identity`. Policy
    such as refusing to overwrite or asking for confirmation belongs to the
    caller; the store does what it is told.

    Args:
        root: Store root directory.
        identity: Private identity used to open entries.
        recipient: Public recipient entries are sealed for.
    """

    def __init__(self, root: str | Path, identity: Identity, recipient: Recipient):
        self.root = Path(root).absolute()
        self._identity = identity
        self._recipient = recipient

    @classmethod
    def from_config(cls, config: StoreConfig) -> "SecretStore":
        """
        Open a store from its configuration.

        The recipient is parsed before anything touches the filesystem, so
        a malformed key fails fast with InvalidRecipientFormatError.
        """
        recipient = parse_recipient(config.recipient)
        identity = load_identities(config.identity_path)[0]
        logger.debug("opened store at %s (%s recipient)", config.root, recipient.kind.value)
        return cls(config.root, identity, recipient)

    @property
    def recipient(self) -> Recipient:
        return self._recipient

    def _require_root(self):
        if not self.root.is_dir():
            raise StoreNotFoundError(f"No store found at {self.root}")

    def _confined_path(self, relative: str | Path) -> Path:
        path = self.resolve(relative)
        if not paths.confined(self.root, path):
            raise InvalidPathError(f"{relative} is not inside the store")
        return path

    # --------- Predicates ----------

    def resolve(self, relative: str | Path) -> Path:
        return paths.resolve(self.root, relative)

    def confined(self, relative: str | Path) -> bool:
        """True if `relative` resolves to a path inside the store."""
        self._require_root()
        return paths.confined(self.root, self.resolve(relative))

    def exists(self, relative: str | Path) -> bool:
        """True if `relative` names an existing entry."""
        self._require_root()
        return paths.is_entry_in_store(self.root, relative)

    # --------- Lifecycle ----------

    def read(self, relative: str | Path) -> bytes:
        """
        Decrypt and return an entry.

        Raises:
            StoreNotFoundError: The store root is missing.
            PasswordNotFoundError: There is no entry under this name.
            StoreReadError: The entry file could not be read.
            DecryptionError: The entry could not be decrypted.
        """
        if not self.exists(relative):
            raise PasswordNotFoundError(f"{relative} is not in the store")

        path = self.resolve(relative)
        try:
            ciphertext = path.read_bytes()
        except OSError as e:
            raise StoreReadError(f"Cannot read {path}: {e.strerror}") from e

        return envelope.unseal(ciphertext, self._identity)

    def write(self, relative: str | Path, plaintext: bytes | str) -> Path:
        """
        Encrypt `plaintext` and store it, replacing any existing entry.

        Missing parent directories are created.

        Returns:
            The path of the entry file.
        """
        self._require_root()
        path = self._confined_path(relative)
        if path.is_dir():
            raise StoreWriteError(f"{relative} is a directory")

        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")
        ciphertext = envelope.seal(plaintext, self._recipient)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(ciphertext)
        except OSError as e:
            raise StoreWriteError(f"Cannot write {path}: {e.strerror}") from e

        logger.info("stored %s", paths.entry_name(self.root, path))
        return path

    def delete(self, relative: str | Path):
        """
        Remove an entry, or a whole directory of entries.

        Raises:
            PasswordNotFoundError: Nothing exists under this name.
            InvalidPathError: The name resolves outside the store.
            StoreWriteError: Removal failed.
        """
        self._require_root()
        path = self._confined_path(relative)
        if not path.exists():
            raise PasswordNotFoundError(f"{relative} is not in the store")

        try:
            if path.is_dir():
                shutil.rmtree(path)
            else:
                path.unlink()
        except OSError as e:
            raise StoreWriteError(f"Cannot remove {path}: {e.strerror}") from e

        logger.info("removed %s", relative)

    def entries(self) -> list[str]:
        """Names of all entries, sorted."""
        self._require_root()
        return sorted(
            paths.entry_name(self.root, p)
            for p in self.root.rglob(f"*{paths.ENTRY_SUFFIX}")
            if p.is_file()
        )
