"""
Keys
Recipients (public encryption targets) and identities (private keys).

Two formats are supported, as a closed set:

  NATIVE — age X25519 keys, Bech32 encoded as ``age1...`` (recipient) and
           ``AGE-SECRET-KEY-1...`` (identity).
  SSH    — OpenSSH ``ssh-ed25519`` and ``ssh-rsa`` keys.

Recipient strings are parsed natively first, then as SSH; the first format
that parses wins.
"""

import base64
import hashlib
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from bech32 import bech32_decode, bech32_encode, convertbits
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, rsa, x25519

from keyage.errors import ConfigLoadError, InvalidRecipientFormatError

logger = logging.getLogger(__name__)

RECIPIENT_HRP = "age"
IDENTITY_HRP = "age-secret-key-"
KEY_SIZE = 32
MIN_RSA_BITS = 2048


class RecipientKind(Enum):
    """Supported key formats."""
    NATIVE = "native"
    SSH = "ssh"


@dataclass(eq=False)
class Recipient:
    """
    A public key that entries are sealed for.

    Attributes:
        kind: NATIVE or SSH.
        key: The cryptography public key object.
        ssh_wire: SSH wire encoding of the key (SSH recipients only).
    """
    kind: RecipientKind
    key: x25519.X25519PublicKey | ed25519.Ed25519PublicKey | rsa.RSAPublicKey
    ssh_wire: bytes = b""

    @property
    def stanza_type(self) -> str:
        if self.kind is RecipientKind.NATIVE:
            return "X25519"
        if isinstance(self.key, ed25519.Ed25519PublicKey):
            return "ssh-ed25519"
        if isinstance(self.key, rsa.RSAPublicKey):
            return "ssh-rsa"
        return ""

    def __str__(self) -> str:
        if self.kind is RecipientKind.NATIVE:
            return _encode_bech32(RECIPIENT_HRP, self.key.public_bytes_raw())
        return self.key.public_bytes(
            serialization.Encoding.OpenSSH, serialization.PublicFormat.OpenSSH
        ).decode("ascii")


@dataclass(eq=False, repr=False)
class Identity:
    """A private key able to open entries sealed for its recipient."""
    kind: RecipientKind
    key: x25519.X25519PrivateKey | ed25519.Ed25519PrivateKey | rsa.RSAPrivateKey
    _public: Recipient = field(init=False)

    def __post_init__(self):
        public = self.key.public_key()
        if self.kind is RecipientKind.NATIVE:
            self._public = Recipient(RecipientKind.NATIVE, public)
        else:
            self._public = Recipient(RecipientKind.SSH, public, ssh_wire_encoding(public))

    def to_public(self) -> Recipient:
        return self._public

    def __repr__(self) -> str:
        # Never expose key material, not even in tracebacks.
        return f"Identity(kind={self.kind.value}, public={self._public})"

    def __str__(self) -> str:
        if self.kind is RecipientKind.NATIVE:
            return _encode_bech32(IDENTITY_HRP, self.key.private_bytes_raw()).upper()
        return self.key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.OpenSSH,
            serialization.NoEncryption(),
        ).decode("ascii")


# --------- Encoding helpers ----------

def _encode_bech32(hrp: str, raw: bytes) -> str:
    return bech32_encode(hrp, convertbits(raw, 8, 5))


def _decode_bech32(text: str, hrp: str) -> bytes:
    got_hrp, data = bech32_decode(text)
    if got_hrp is None or got_hrp != hrp:
        raise ValueError(f"not a Bech32 string with prefix {hrp!r}")
    raw = convertbits(data, 5, 8, False)
    if raw is None or len(raw) != KEY_SIZE:
        raise ValueError("invalid key length")
    return bytes(raw)


def ssh_wire_encoding(public_key) -> bytes:
    """The SSH wire format of a public key (the base64 field, decoded)."""
    line = public_key.public_bytes(
        serialization.Encoding.OpenSSH, serialization.PublicFormat.OpenSSH
    )
    return base64.b64decode(line.split(b" ")[1])


def ssh_tag(ssh_wire: bytes) -> bytes:
    """First four bytes of SHA-256 over the key, used to match stanzas."""
    return hashlib.sha256(ssh_wire).digest()[:4]


# --------- Recipients ----------

def _parse_native_recipient(text: str) -> Recipient:
    raw = _decode_bech32(text, RECIPIENT_HRP)
    return Recipient(RecipientKind.NATIVE, x25519.X25519PublicKey.from_public_bytes(raw))


def _parse_ssh_recipient(text: str) -> Recipient:
    key = serialization.load_ssh_public_key(text.encode("ascii"))
    if isinstance(key, rsa.RSAPublicKey):
        if key.key_size < MIN_RSA_BITS:
            raise ValueError(f"RSA key too small ({key.key_size} bits)")
    elif not isinstance(key, ed25519.Ed25519PublicKey):
        raise ValueError(f"unsupported SSH key type {type(key).__name__}")
    return Recipient(RecipientKind.SSH, key, ssh_wire_encoding(key))


_RECIPIENT_PARSERS = (
    (RecipientKind.NATIVE, _parse_native_recipient),
    (RecipientKind.SSH, _parse_ssh_recipient),
)


def parse_recipient(text: str) -> Recipient:
    """
    Parse a recipient string.

    Formats are tried in a fixed order, native first, so an ambiguous string
    always parses the same way.

    Raises:
        InvalidRecipientFormatError: If no format accepts the string.
    """
    text = text.strip()
    for kind, parser in _RECIPIENT_PARSERS:
        try:
            recipient = parser(text)
        except (ValueError, UnicodeError, UnsupportedAlgorithm):
            continue
        logger.debug("parsed %s recipient", kind.value)
        return recipient

    raise InvalidRecipientFormatError(
        "Recipient is neither an age public key nor a supported SSH public key"
    )


# --------- Identities ----------

def generate_identity() -> Identity:
    """Create a fresh native identity."""
    return Identity(RecipientKind.NATIVE, x25519.X25519PrivateKey.generate())


def parse_identity(text: str) -> Identity:
    """Parse an ``AGE-SECRET-KEY-1...`` string."""
    raw = _decode_bech32(text.strip(), IDENTITY_HRP)
    return Identity(RecipientKind.NATIVE, x25519.X25519PrivateKey.from_private_bytes(raw))


def _load_ssh_identity(data: bytes) -> Identity:
    try:
        key = serialization.load_ssh_private_key(data, password=None)
    except (ValueError, UnsupportedAlgorithm):
        # Older PEM ("BEGIN RSA PRIVATE KEY") files.
        key = serialization.load_pem_private_key(data, password=None)

    if not isinstance(key, (ed25519.Ed25519PrivateKey, rsa.RSAPrivateKey)):
        raise ValueError(f"unsupported SSH key type {type(key).__name__}")
    return Identity(RecipientKind.SSH, key)


def load_identities(path: str | Path) -> list[Identity]:
    """
    Load the identities in an identity file.

    The file is either an age identity file (one key per line, ``#``
    comments and blank lines ignored) or an unencrypted SSH private key.

    Raises:
        ConfigLoadError: If the file cannot be read or holds no usable key.
    """
    path = Path(path).expanduser()
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ConfigLoadError(f"Cannot read identity file {path}: {e.strerror}") from e

    try:
        if data.lstrip().startswith(b"-----BEGIN"):
            identities = [_load_ssh_identity(data)]
        else:
            identities = [
                parse_identity(line)
                for line in data.decode("utf-8").splitlines()
                if line.strip() and not line.lstrip().startswith("#")
            ]
    except (ValueError, TypeError, UnicodeError, UnsupportedAlgorithm) as e:
        raise ConfigLoadError(f"Invalid identity file {path}") from e

    if not identities:
        raise ConfigLoadError(f"No identities found in {path}")

    logger.debug("loaded %d identities from %s", len(identities), path)
    return identities
