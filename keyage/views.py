"""
Views
Ways of presenting store content: one-time codes, QR codes and the tree.

These work on decrypted bytes or on the directory layout and know nothing
about encryption.
"""

import io
from pathlib import Path

import pyotp
import qrcode

from keyage.config import CONFIG_FILE_NAME
from keyage.errors import OtpError


def totp_code(secret: bytes) -> str:
    """
    Current TOTP code for an ``otpauth://totp/...`` URI.

    Raises:
        OtpError: If `secret` is not a TOTP provisioning URI.
    """
    try:
        otp = pyotp.parse_uri(secret.decode("utf-8").strip())
    except (UnicodeDecodeError, ValueError) as e:
        raise OtpError(f"Entry is not a valid otpauth URI: {e}") from e

    if not isinstance(otp, pyotp.TOTP):
        raise OtpError("Entry is not a time-based (TOTP) URI")

    # The base32 secret is only decoded here.
    try:
        return otp.now()
    except ValueError as e:
        raise OtpError(f"Entry has an invalid TOTP secret: {e}") from e


def render_qr(data: bytes | str) -> str:
    """Render `data` as a QR code made of terminal block characters."""
    qr = qrcode.QRCode(border=1)
    qr.add_data(data)
    qr.make(fit=True)

    out = io.StringIO()
    qr.print_ascii(out=out, invert=True)
    return out.getvalue()


def _tree_lines(directory: Path, prefix: str, hidden: set[str]) -> list[str]:
    children = sorted(
        (p for p in directory.iterdir() if p.name not in hidden),
        key=lambda p: (not p.is_dir(), p.name),
    )
    lines = []
    for i, child in enumerate(children):
        last = i == len(children) - 1
        lines.append(prefix + ("└── " if last else "├── ") + child.name)
        # Symlinked directories may point outside the store.
        if child.is_dir() and not child.is_symlink():
            lines += _tree_lines(child, prefix + ("    " if last else "│   "), set())
    return lines


def render_tree(root: str | Path) -> str:
    """Indented listing of the store, directories first, config hidden."""
    root = Path(root)
    lines = [root.resolve().name] + _tree_lines(root, "", {CONFIG_FILE_NAME})
    return "\n".join(lines) + "\n"
