"""
keyage — an age-encrypted password store
A directory tree of independently encrypted entries, one file per secret.

Entries are sealed for a public recipient (a native age X25519 key or an SSH
key) using the age v1 file format, and opened with the matching private
identity. Paths are confined to the store root.

Usage:
    from keyage import SecretStore, StoreConfig, resolve_store_root
    store = SecretStore.from_config(StoreConfig.from_root(resolve_store_root()))
    store.write("site/login", "correct horse battery staple")
    store.read("site/login")
"""

from keyage.config import Configuration, StoreConfig, resolve_store_root
from keyage.envelope import seal, unseal
from keyage.errors import (
    ConfigLoadError,
    DecryptionError,
    EncryptionError,
    EntryExistsError,
    InvalidPathError,
    InvalidRecipientFormatError,
    KeyageError,
    OtpError,
    PasswordNotFoundError,
    StoreNotFoundError,
    StoreReadError,
    StoreWriteError,
)
from keyage.keys import (
    Identity,
    Recipient,
    RecipientKind,
    generate_identity,
    load_identities,
    parse_recipient,
)
from keyage.store import SecretStore

__version__ = "0.1.0"
__all__ = [
    "SecretStore",
    "StoreConfig",
    "Configuration",
    "resolve_store_root",
    "seal",
    "unseal",
    "Identity",
    "Recipient",
    "RecipientKind",
    "generate_identity",
    "load_identities",
    "parse_recipient",
    "KeyageError",
    "ConfigLoadError",
    "InvalidRecipientFormatError",
    "EncryptionError",
    "DecryptionError",
    "StoreNotFoundError",
    "PasswordNotFoundError",
    "StoreReadError",
    "StoreWriteError",
    "InvalidPathError",
    "EntryExistsError",
    "OtpError",
]
