"""
Tests for the age envelope: sealing, opening and header handling.
"""

import os

import pytest
from cryptography.hazmat.primitives.asymmetric import ed448

from keyage.envelope import (
    CHUNK_SIZE,
    EnvelopeFormatError,
    Stanza,
    StreamEncryptor,
    VERSION_LINE,
    b64d,
    b64e,
    header_mac,
    hkdf,
    parse_header,
    seal,
    unseal,
    wrap_file_key,
)
from keyage.errors import DecryptionError, EncryptionError
from keyage.keys import Identity, Recipient, RecipientKind, generate_identity, parse_recipient

from conftest import openssh_public


@pytest.mark.parametrize("size", [0, 1, 100, CHUNK_SIZE - 1, CHUNK_SIZE, CHUNK_SIZE + 1, 3 * CHUNK_SIZE + 7])
def test_round_trip(identity, size):
    """seal then unseal returns the plaintext, across chunk boundaries."""
    plaintext = os.urandom(size)
    assert unseal(seal(plaintext, identity.to_public()), identity) == plaintext


def test_seal_is_randomized(identity):
    recipient = identity.to_public()
    assert seal(b"same", recipient) != seal(b"same", recipient)


def test_wrong_identity_rejected(identity):
    ciphertext = seal(b"secret", identity.to_public())
    with pytest.raises(DecryptionError):
        unseal(ciphertext, generate_identity())


def test_header_layout(identity):
    """The output starts with the version line and a single X25519 stanza."""
    ciphertext = seal(b"secret", identity.to_public())
    lines = ciphertext.split(b"\n")
    assert lines[0] == VERSION_LINE
    assert lines[1].startswith(b"-> X25519 ")
    assert lines[3].startswith(b"--- ")

    header, offset = parse_header(ciphertext)
    assert [s.type for s in header.stanzas] == ["X25519"]
    assert len(header.mac) == 32
    # 16-byte nonce, then one chunk of 6 bytes plus its tag
    assert len(ciphertext) - offset == 16 + 6 + 16


def test_seal_without_recipients():
    with pytest.raises(EncryptionError):
        seal(b"secret", [])


def test_seal_unsupported_key():
    """Only X25519, Ed25519 and RSA keys have a stanza type."""
    recipient = Recipient(RecipientKind.SSH, ed448.Ed448PrivateKey.generate().public_key())
    assert recipient.stanza_type == ""
    with pytest.raises(EncryptionError):
        seal(b"secret", recipient)


def test_seal_multiple_recipients(identity):
    other = generate_identity()
    ciphertext = seal(b"shared", [identity.to_public(), other.to_public()])
    assert unseal(ciphertext, identity) == b"shared"
    assert unseal(ciphertext, other) == b"shared"


def test_truncated_ciphertext_rejected(identity):
    """A half-written entry fails to open instead of decrypting short."""
    ciphertext = seal(os.urandom(2 * CHUNK_SIZE), identity.to_public())
    for cut in (10, len(ciphertext) // 2, len(ciphertext) - CHUNK_SIZE - 16, len(ciphertext) - 1):
        with pytest.raises(DecryptionError):
            unseal(ciphertext[:cut], identity)


def test_tampered_header_rejected(identity):
    ciphertext = bytearray(seal(b"secret", identity.to_public()))
    # Flip a character inside the stanza share; the MAC no longer matches
    # (or the unwrap fails), either way it is the same error.
    pos = ciphertext.index(b"X25519 ") + 8
    ciphertext[pos] = ord("A") if ciphertext[pos] != ord("A") else ord("B")
    with pytest.raises(DecryptionError):
        unseal(bytes(ciphertext), identity)


def test_tampered_payload_rejected(identity):
    ciphertext = bytearray(seal(b"secret", identity.to_public()))
    ciphertext[-1] ^= 0x01
    with pytest.raises(DecryptionError):
        unseal(bytes(ciphertext), identity)


def test_garbage_rejected(identity):
    for data in (b"", b"not an age file", b"age-encryption.org/v1\n"):
        with pytest.raises(DecryptionError):
            unseal(data, identity)


def test_failures_are_indistinguishable(identity):
    """Every decryption failure carries the same message."""
    messages = set()
    for data in (b"junk", seal(b"x", generate_identity().to_public())):
        with pytest.raises(DecryptionError) as info:
            unseal(data, identity)
        messages.add(str(info.value))
        assert info.value.__cause__ is None
    assert len(messages) == 1


def test_scrypt_envelope_rejected(identity):
    """Passphrase envelopes are not supported, even alongside a valid stanza."""
    ciphertext = seal(b"secret", identity.to_public())
    header_end = ciphertext.index(b"\n---")
    scrypt = Stanza("scrypt", [b64e(os.urandom(16)), "18"], os.urandom(32)).encode()
    forged = ciphertext[:header_end + 1] + scrypt + ciphertext[header_end + 1:]
    with pytest.raises(DecryptionError):
        unseal(forged, identity)


def test_unknown_stanzas_are_skipped(identity):
    """Stanzas of unknown types (grease) don't prevent decryption."""
    file_key = os.urandom(16)
    header = VERSION_LINE + b"\n"
    header += Stanza("grease-x", ["a", "b"], os.urandom(20)).encode()
    header += wrap_file_key(file_key, identity.to_public()).encode()
    header += b"---"
    mac = header_mac(file_key, header)

    nonce = os.urandom(16)
    encryptor = StreamEncryptor(hkdf(file_key, nonce, b"payload"))
    body = encryptor.update(b"greased") + encryptor.finalize()
    ciphertext = header + b" " + b64e(mac).encode() + b"\n" + nonce + body

    assert unseal(ciphertext, identity) == b"greased"


def test_ssh_ed25519_round_trip(ed25519_key):
    recipient = parse_recipient(openssh_public(ed25519_key))
    identity = Identity(RecipientKind.SSH, ed25519_key)
    ciphertext = seal(b"ssh secret", recipient)
    assert ciphertext.split(b"\n")[1].startswith(b"-> ssh-ed25519 ")
    assert unseal(ciphertext, identity) == b"ssh secret"


def test_ssh_rsa_round_trip(rsa_key):
    recipient = parse_recipient(openssh_public(rsa_key))
    identity = Identity(RecipientKind.SSH, rsa_key)
    ciphertext = seal(b"rsa secret", recipient)
    assert ciphertext.split(b"\n")[1].startswith(b"-> ssh-rsa ")
    assert unseal(ciphertext, identity) == b"rsa secret"


def test_ssh_wrong_key_rejected(ed25519_key):
    from cryptography.hazmat.primitives.asymmetric import ed25519

    ciphertext = seal(b"x", parse_recipient(openssh_public(ed25519_key)))
    other = Identity(RecipientKind.SSH, ed25519.Ed25519PrivateKey.generate())
    with pytest.raises(DecryptionError):
        unseal(ciphertext, other)
    with pytest.raises(DecryptionError):
        unseal(ciphertext, generate_identity())


def test_stanza_body_wrapping():
    """Bodies wrap at 64 columns and always end with a short line."""
    encoded = Stanza("t", ["a"], bytes(48)).encode()
    lines = encoded.split(b"\n")
    assert lines[0] == b"-> t a"
    assert len(lines[1]) == 64
    assert lines[2] == b""  # the terminating short (empty) line
    assert encoded.endswith(b"\n\n")

    short = Stanza("t", [], bytes(32)).encode()
    assert short.split(b"\n")[1] == b64e(bytes(32)).encode()


def test_stream_encryptor_finalize_once():
    encryptor = StreamEncryptor(bytes(32))
    encryptor.update(b"abc")
    encryptor.finalize()
    with pytest.raises(EncryptionError):
        encryptor.update(b"more")
    with pytest.raises(EncryptionError):
        encryptor.finalize()


def test_b64_strictness():
    assert b64e(b"\x00") == "AA"
    assert b64d("AA") == b"\x00"
    for bad in ("AA==", "A", "AB", "A A", "@@@@"):
        with pytest.raises(EnvelopeFormatError):
            b64d(bad)
