"""
Envelope — age v1 file format
Seals bytes for a recipient and opens them again with an identity.

Layout of a sealed entry:

    age-encryption.org/v1
    -> X25519 <ephemeral share>
    <wrapped file key>
    --- <header MAC>
    <16-byte nonce><payload>

A random 16-byte file key is wrapped once per recipient stanza. The header
is authenticated with HMAC-SHA-256 under a key derived from the file key.
The payload is encrypted with ChaCha20-Poly1305 in 64 KiB chunks (the STREAM
construction), each chunk nonce carrying a counter and a last-chunk flag, so
truncation and reordering are detected.

Output interoperates with the reference age and rage tools.
"""

import base64
import hmac
import hashlib
import logging
import os
from dataclasses import dataclass, field

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ed25519, padding, x25519
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from keyage.errors import DecryptionError, EncryptionError
from keyage.keys import Identity, Recipient, ssh_tag

logger = logging.getLogger(__name__)

VERSION_LINE = b"age-encryption.org/v1"
STANZA_PREFIX = b"-> "
MAC_PREFIX = b"--- "
COLUMNS = 64

FILE_KEY_SIZE = 16
KEY_SIZE = 32
PAYLOAD_NONCE_SIZE = 16
CHUNK_SIZE = 64 * 1024
TAG_SIZE = 16

X25519_LABEL = b"age-encryption.org/v1/X25519"
SSH_ED25519_LABEL = b"age-encryption.org/v1/ssh-ed25519"
SSH_RSA_LABEL = b"age-encryption.org/v1/ssh-rsa"

# Passphrase envelopes; a store keyed by an identity never opens these.
UNSUPPORTED_STANZAS = {"scrypt"}

_ZERO_NONCE = bytes(12)
_ED25519_P = 2**255 - 19


class EnvelopeFormatError(ValueError):
    """Malformed header or payload. Surfaced to callers as DecryptionError."""


# --------- Encoding helpers ----------

def b64e(data: bytes) -> str:
    """Standard base64 without padding, as used throughout the header."""
    return base64.b64encode(data).decode("ascii").rstrip("=")


def b64d(text: str) -> bytes:
    """Strict inverse of b64e(); rejects padding and non-canonical input."""
    if "=" in text or "\r" in text or "\n" in text:
        raise EnvelopeFormatError("invalid base64")
    try:
        raw = base64.b64decode(text + "=" * (-len(text) % 4), validate=True)
    except ValueError as e:
        raise EnvelopeFormatError("invalid base64") from e
    if b64e(raw) != text:
        raise EnvelopeFormatError("non-canonical base64")
    return raw


def hkdf(ikm: bytes, salt: bytes | None, info: bytes, length: int = KEY_SIZE) -> bytes:
    return HKDF(algorithm=hashes.SHA256(), length=length, salt=salt, info=info).derive(ikm)


# --------- Header ----------

@dataclass
class Stanza:
    """One recipient entry of the header: a type, arguments and a body."""
    type: str
    args: list[str] = field(default_factory=list)
    body: bytes = b""

    def encode(self) -> bytes:
        line = " ".join([self.type, *self.args])
        encoded = b64e(self.body)
        lines = [encoded[i:i + COLUMNS] for i in range(0, len(encoded), COLUMNS)]
        # The body always ends with a line shorter than a full column.
        if not lines or len(lines[-1]) == COLUMNS:
            lines.append("")
        return STANZA_PREFIX + line.encode("ascii") + b"\n" + "".join(
            chunk + "\n" for chunk in lines
        ).encode("ascii")


@dataclass
class Header:
    stanzas: list[Stanza]
    mac: bytes
    authenticated: bytes  # everything the MAC covers, up to and including "---"


def _read_line(data: bytes, pos: int) -> tuple[bytes, int]:
    end = data.find(b"\n", pos)
    if end < 0:
        raise EnvelopeFormatError("truncated header")
    return data[pos:end], end + 1


def _valid_arg(arg: bytes) -> bool:
    return bool(arg) and all(0x21 <= c <= 0x7E for c in arg)


def parse_header(data: bytes) -> tuple[Header, int]:
    """
    Parse the header at the start of `data`.

    Returns:
        The parsed header and the offset at which the payload starts.
    """
    line, pos = _read_line(data, 0)
    if line != VERSION_LINE:
        raise EnvelopeFormatError("unknown format version")

    stanzas = []
    while True:
        start = pos
        line, pos = _read_line(data, pos)

        if line.startswith(MAC_PREFIX):
            if not stanzas:
                raise EnvelopeFormatError("header has no recipients")
            mac = b64d(line[len(MAC_PREFIX):].decode("ascii"))
            authenticated = data[:start + len(MAC_PREFIX) - 1]
            return Header(stanzas, mac, authenticated), pos

        if not line.startswith(STANZA_PREFIX):
            raise EnvelopeFormatError("malformed header line")

        args = line[len(STANZA_PREFIX):].split(b" ")
        if not all(_valid_arg(arg) for arg in args):
            raise EnvelopeFormatError("malformed stanza arguments")

        body_lines = []
        while True:
            body_line, pos = _read_line(data, pos)
            if len(body_line) > COLUMNS:
                raise EnvelopeFormatError("stanza body line too long")
            body_lines.append(body_line.decode("ascii"))
            if len(body_line) < COLUMNS:
                break

        stanzas.append(Stanza(
            type=args[0].decode("ascii"),
            args=[arg.decode("ascii") for arg in args[1:]],
            body=b64d("".join(body_lines)),
        ))


def header_mac(file_key: bytes, authenticated: bytes) -> bytes:
    mac_key = hkdf(file_key, None, b"header")
    return hmac.new(mac_key, authenticated, hashlib.sha256).digest()


# --------- Key wrapping ----------

def _aead_wrap(key: bytes, file_key: bytes) -> bytes:
    return ChaCha20Poly1305(key).encrypt(_ZERO_NONCE, file_key, None)


def _aead_unwrap(key: bytes, body: bytes) -> bytes | None:
    if len(body) != FILE_KEY_SIZE + TAG_SIZE:
        raise EnvelopeFormatError("invalid wrapped key size")
    try:
        return ChaCha20Poly1305(key).decrypt(_ZERO_NONCE, body, None)
    except InvalidTag:
        return None


def _x25519(scalar: bytes, point: bytes) -> bytes:
    # cryptography rejects an all-zero shared secret with ValueError.
    private = x25519.X25519PrivateKey.from_private_bytes(scalar)
    return private.exchange(x25519.X25519PublicKey.from_public_bytes(point))


def ed25519_to_x25519_public(raw: bytes) -> bytes:
    """Birational map from an Edwards25519 point to its Montgomery u-coordinate."""
    y = int.from_bytes(raw, "little") & ((1 << 255) - 1)
    u = (1 + y) * pow(1 - y, _ED25519_P - 2, _ED25519_P) % _ED25519_P
    return u.to_bytes(KEY_SIZE, "little")


def ed25519_to_x25519_private(key: ed25519.Ed25519PrivateKey) -> bytes:
    return hashlib.sha512(key.private_bytes_raw()).digest()[:KEY_SIZE]


def _wrap_x25519(file_key: bytes, recipient: Recipient) -> Stanza:
    their_public = recipient.key.public_bytes_raw()
    ephemeral = x25519.X25519PrivateKey.generate()
    share = ephemeral.public_key().public_bytes_raw()
    shared = ephemeral.exchange(recipient.key)

    wrap_key = hkdf(shared, share + their_public, X25519_LABEL)
    return Stanza("X25519", [b64e(share)], _aead_wrap(wrap_key, file_key))


def _unwrap_x25519(stanza: Stanza, identity: Identity) -> bytes | None:
    if stanza.type != "X25519":
        return None
    if len(stanza.args) != 1:
        raise EnvelopeFormatError("malformed X25519 stanza")
    share = b64d(stanza.args[0])
    if len(share) != KEY_SIZE:
        raise EnvelopeFormatError("malformed X25519 share")

    our_public = identity.to_public().key.public_bytes_raw()
    shared = identity.key.exchange(x25519.X25519PublicKey.from_public_bytes(share))
    wrap_key = hkdf(shared, share + our_public, X25519_LABEL)
    return _aead_unwrap(wrap_key, stanza.body)


def _ssh_ed25519_shared(scalar: bytes, point: bytes, ssh_wire: bytes) -> bytes:
    tweak = hkdf(b"", ssh_wire, SSH_ED25519_LABEL)
    return _x25519(tweak, _x25519(scalar, point))


def _wrap_ssh_ed25519(file_key: bytes, recipient: Recipient) -> Stanza:
    their_public = ed25519_to_x25519_public(recipient.key.public_bytes_raw())
    ephemeral = os.urandom(KEY_SIZE)
    share = x25519.X25519PrivateKey.from_private_bytes(ephemeral).public_key().public_bytes_raw()
    shared = _ssh_ed25519_shared(ephemeral, their_public, recipient.ssh_wire)

    wrap_key = hkdf(shared, share + their_public, SSH_ED25519_LABEL)
    return Stanza(
        "ssh-ed25519",
        [b64e(ssh_tag(recipient.ssh_wire)), b64e(share)],
        _aead_wrap(wrap_key, file_key),
    )


def _unwrap_ssh_ed25519(stanza: Stanza, identity: Identity) -> bytes | None:
    if stanza.type != "ssh-ed25519":
        return None
    if len(stanza.args) != 2:
        raise EnvelopeFormatError("malformed ssh-ed25519 stanza")

    public = identity.to_public()
    if b64d(stanza.args[0]) != ssh_tag(public.ssh_wire):
        return None
    share = b64d(stanza.args[1])
    if len(share) != KEY_SIZE:
        raise EnvelopeFormatError("malformed ssh-ed25519 share")

    our_public = ed25519_to_x25519_public(public.key.public_bytes_raw())
    scalar = ed25519_to_x25519_private(identity.key)
    shared = _ssh_ed25519_shared(scalar, share, public.ssh_wire)
    wrap_key = hkdf(shared, share + our_public, SSH_ED25519_LABEL)
    return _aead_unwrap(wrap_key, stanza.body)


def _rsa_padding() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=SSH_RSA_LABEL,
    )


def _wrap_ssh_rsa(file_key: bytes, recipient: Recipient) -> Stanza:
    body = recipient.key.encrypt(file_key, _rsa_padding())
    return Stanza("ssh-rsa", [b64e(ssh_tag(recipient.ssh_wire))], body)


def _unwrap_ssh_rsa(stanza: Stanza, identity: Identity) -> bytes | None:
    if stanza.type != "ssh-rsa":
        return None
    if len(stanza.args) != 1:
        raise EnvelopeFormatError("malformed ssh-rsa stanza")
    if b64d(stanza.args[0]) != ssh_tag(identity.to_public().ssh_wire):
        return None
    return identity.key.decrypt(stanza.body, _rsa_padding())


_WRAPPERS = {
    "X25519": _wrap_x25519,
    "ssh-ed25519": _wrap_ssh_ed25519,
    "ssh-rsa": _wrap_ssh_rsa,
}

_UNWRAPPERS = {
    "X25519": _unwrap_x25519,
    "ssh-ed25519": _unwrap_ssh_ed25519,
    "ssh-rsa": _unwrap_ssh_rsa,
}


def wrap_file_key(file_key: bytes, recipient: Recipient) -> Stanza:
    """Wrap the file key for one recipient."""
    wrap = _WRAPPERS.get(recipient.stanza_type)
    if wrap is None:
        raise EncryptionError(f"Unsupported recipient key {type(recipient.key).__name__}")
    return wrap(file_key, recipient)


def unwrap_file_key(stanza: Stanza, identity: Identity) -> bytes | None:
    """
    Try to recover the file key from one stanza.

    Returns None when the stanza is not addressed to this identity.
    """
    unwrap = _UNWRAPPERS.get(identity.to_public().stanza_type)
    file_key = unwrap(stanza, identity) if unwrap else None

    if file_key is not None and len(file_key) != FILE_KEY_SIZE:
        raise EnvelopeFormatError("invalid file key size")
    return file_key


# --------- Payload (STREAM) ----------

def _chunk_nonce(counter: int, last: bool) -> bytes:
    return counter.to_bytes(11, "big") + (b"\x01" if last else b"\x00")


class StreamEncryptor:
    """
    Encrypts a payload chunk by chunk.

    Feed plaintext with update() and close the stream with finalize(). A
    stream that was never finalized lacks its last chunk and is not a valid
    payload.
    """

    def __init__(self, key: bytes):
        self._aead = ChaCha20Poly1305(key)
        self._buffer = bytearray()
        self._counter = 0
        self._finalized = False

    def _seal_chunk(self, chunk: bytes, last: bool) -> bytes:
        sealed = self._aead.encrypt(_chunk_nonce(self._counter, last), chunk, None)
        self._counter += 1
        return sealed

    def update(self, data: bytes) -> bytes:
        if self._finalized:
            raise EncryptionError("Stream already finalized")
        self._buffer += data
        out = bytearray()
        # Hold back at least one byte: the last chunk is sealed differently.
        while len(self._buffer) > CHUNK_SIZE:
            out += self._seal_chunk(bytes(self._buffer[:CHUNK_SIZE]), last=False)
            del self._buffer[:CHUNK_SIZE]
        return bytes(out)

    def finalize(self) -> bytes:
        if self._finalized:
            raise EncryptionError("Stream already finalized")
        self._finalized = True
        last = self._seal_chunk(bytes(self._buffer), last=True)
        self._buffer.clear()
        return last


def decrypt_payload(key: bytes, payload: bytes) -> bytes:
    aead = ChaCha20Poly1305(key)
    out = bytearray()
    counter = 0
    pos = 0
    while True:
        chunk = payload[pos:pos + CHUNK_SIZE + TAG_SIZE]
        pos += len(chunk)
        last = pos >= len(payload)
        if len(chunk) < TAG_SIZE:
            raise EnvelopeFormatError("truncated payload")
        if last and len(chunk) == TAG_SIZE and counter > 0:
            raise EnvelopeFormatError("empty final chunk")
        out += aead.decrypt(_chunk_nonce(counter, last), chunk, None)
        counter += 1
        if last:
            return bytes(out)


# --------- Seal / unseal ----------

def seal(plaintext: bytes, recipients: Recipient | list[Recipient]) -> bytes:
    """
    Encrypt `plaintext` for the given recipient(s).

    The store always passes exactly one recipient.

    Raises:
        EncryptionError: If there is no recipient or any step fails. No
            partial ciphertext is ever returned.
    """
    if isinstance(recipients, Recipient):
        recipients = [recipients]
    if not recipients:
        raise EncryptionError("No recipients to encrypt to")

    try:
        file_key = os.urandom(FILE_KEY_SIZE)
        header = VERSION_LINE + b"\n"
        for recipient in recipients:
            header += wrap_file_key(file_key, recipient).encode()
        header += MAC_PREFIX.rstrip()
        mac = header_mac(file_key, header)

        nonce = os.urandom(PAYLOAD_NONCE_SIZE)
        encryptor = StreamEncryptor(hkdf(file_key, nonce, b"payload"))
        body = encryptor.update(plaintext)
        body += encryptor.finalize()
    except (ValueError, TypeError) as e:
        raise EncryptionError(f"Encryption failed: {e}") from e

    logger.debug("sealed %d stanza(s)", len(recipients))
    return header + b" " + b64e(mac).encode("ascii") + b"\n" + nonce + body


def unseal(ciphertext: bytes, identity: Identity) -> bytes:
    """
    Decrypt an envelope with a single identity.

    Raises:
        DecryptionError: For any failure. Parse errors, passphrase envelopes,
            a non-matching identity, a bad header MAC and a corrupted payload
            are deliberately indistinguishable.
    """
    try:
        header, offset = parse_header(ciphertext)
        if any(s.type in UNSUPPORTED_STANZAS for s in header.stanzas):
            raise EnvelopeFormatError("unsupported envelope variant")

        for stanza in header.stanzas:
            file_key = unwrap_file_key(stanza, identity)
            if file_key is not None:
                break
        else:
            raise EnvelopeFormatError("no matching identity")

        if not hmac.compare_digest(header_mac(file_key, header.authenticated), header.mac):
            raise EnvelopeFormatError("header MAC mismatch")

        nonce = ciphertext[offset:offset + PAYLOAD_NONCE_SIZE]
        if len(nonce) != PAYLOAD_NONCE_SIZE:
            raise EnvelopeFormatError("truncated payload nonce")
        return decrypt_payload(
            hkdf(file_key, nonce, b"payload"),
            ciphertext[offset + PAYLOAD_NONCE_SIZE:],
        )
    except (ValueError, TypeError, UnicodeError, InvalidTag):
        raise DecryptionError() from None
