"""Password generation.

Every character is drawn with :mod:`secrets`, which selects uniformly from
the alphabet (no modulo bias). The alphabets leave out characters that are
easy to misread: ``O``/``0`` and ``l``/``1`` (``I`` is kept out as well).
"""
import secrets
from typing import List

UPPER = "ABCDEFGHJKLMNPQRSTUVWXYZ"
LOWER = "abcdefghjkmnpqrstuvwxyz"
DIGITS = "23456789"
SYMBOLS = "!@#$%^&*-_=+"
ALL_CHARS = UPPER + LOWER + DIGITS + SYMBOLS

CHARACTER_CLASSES = (UPPER, LOWER, DIGITS, SYMBOLS)
MIN_LENGTH = len(CHARACTER_CLASSES)
DEFAULT_LENGTH = 20


def _shuffle(chars: List[str]) -> None:
    # Fisher-Yates with a CSPRNG index
    for i in range(len(chars) - 1, 0, -1):
        j = secrets.randbelow(i + 1)
        chars[i], chars[j] = chars[j], chars[i]


def generate_password(length: int = DEFAULT_LENGTH) -> str:
    """Generate a password containing every character class.

    Args:
        length: Total length, at least 4

    Returns:
        The generated password

    Raises:
        ValueError: If length is below 4
    """
    if length < MIN_LENGTH:
        raise ValueError(f"Password length must be at least {MIN_LENGTH}")

    chars = [secrets.choice(alphabet) for alphabet in CHARACTER_CLASSES]
    chars.extend(secrets.choice(ALL_CHARS) for _ in range(length - MIN_LENGTH))
    _shuffle(chars)
    return "".join(chars)


def mask_password(password: str) -> str:
    """Show only the first four characters of a password."""
    return password[:4] + "*" * 12
