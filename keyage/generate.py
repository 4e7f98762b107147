"""
Password Generation
Random passwords for `keyage generate`.
"""

import secrets
import string

MIN_LENGTH = 8

# Characters that are easy to confuse when read back from a screen.
SIMILAR_CHARACTERS = set("iIlL1oO0\"'`|")


def _pool(chars: str) -> str:
    return "".join(c for c in chars if c not in SIMILAR_CHARACTERS)


DIGITS = _pool(string.digits)
LOWERCASE = _pool(string.ascii_lowercase)
UPPERCASE = _pool(string.ascii_uppercase)
SYMBOLS = _pool(string.punctuation)


def generate_password(length: int, symbols: bool = True) -> str:
    """
    Generate a password of `length` characters.

    Every character pool in use (digits, lower and upper case letters and,
    unless disabled, symbols) is represented at least once.

    Raises:
        ValueError: If `length` is below MIN_LENGTH.
    """
    if length < MIN_LENGTH:
        raise ValueError(f"Password length must be at least {MIN_LENGTH}")

    pools = [DIGITS, LOWERCASE, UPPERCASE]
    if symbols:
        pools.append(SYMBOLS)

    chars = [secrets.choice(pool) for pool in pools]
    alphabet = "".join(pools)
    chars += [secrets.choice(alphabet) for _ in range(length - len(chars))]

    # Don't leave the guaranteed characters at fixed positions.
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)
