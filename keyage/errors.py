"""
Errors
The closed error taxonomy of the store.

Every failure surfaced by keyage is one of these classes, so callers can
branch on the kind of failure instead of parsing message text. The
underlying cause, when there is one, is chained with ``raise ... from``.
"""


class KeyageError(Exception):
    """Base class for every error raised by keyage."""


class ConfigLoadError(KeyageError):
    """The configuration (or the identity file it points to) is unusable."""


class InvalidRecipientFormatError(KeyageError):
    """The recipient string is neither a native age key nor an SSH key."""


class EncryptionError(KeyageError):
    """Sealing a plaintext failed. No ciphertext was produced."""


class DecryptionError(KeyageError):
    """
    Opening a ciphertext failed.

    Header errors, unsupported envelope variants and a non-matching identity
    all raise this same error with the same message, so the failure does not
    reveal whether a ciphertext was addressed to a given identity.
    """

    def __init__(self, message: str = "Could not decrypt the entry"):
        super().__init__(message)


class StoreNotFoundError(KeyageError):
    """The store root or a target path does not exist."""


class PasswordNotFoundError(KeyageError):
    """No entry exists under the requested name."""


class StoreReadError(KeyageError):
    """Reading an entry from disk failed."""


class StoreWriteError(KeyageError):
    """Writing or removing an entry on disk failed."""


class InvalidPathError(KeyageError):
    """A path escapes the store root, or the confinement check itself failed."""


class EntryExistsError(KeyageError):
    """An entry already exists and overwriting was not requested."""


class OtpError(KeyageError):
    """Decrypted content could not be interpreted as a TOTP secret."""
