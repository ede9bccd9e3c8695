"""
Identifier codec for generated paint IDs.

A code is the configured prefix, three uppercase letters and five digits,
e.g. "H66AAA00001". The 1-indexed counter minus one is a mixed-radix number:
the low five digits are base 10, the letter block is three base-26 digits
(A=0) with the most significant letter first.
"""
import re
from typing import Optional

from .config import ID_PREFIX

DIGITS = 5
DIGIT_SPACE = 10 ** DIGITS
LETTERS = 3
LETTER_SPACE = 26 ** LETTERS
MAX_COUNTER = LETTER_SPACE * DIGIT_SPACE

_LEGACY_NUMERIC = re.compile(r"^\d{1,4}$")


def _pattern(prefix: str):
    return re.compile(rf"^{re.escape(prefix)}[A-Z]{{{LETTERS}}}[0-9]{{{DIGITS}}}$")


def encode(counter: int, prefix: str = ID_PREFIX) -> str:
    """
    Convert a counter to its code.

    Args:
        counter: 1-indexed counter
        prefix: Code prefix

    Returns:
        The formatted code

    Raises:
        ValueError: if the counter is below 1 or beyond the letter block capacity
    """
    if isinstance(counter, bool) or not isinstance(counter, int):
        raise ValueError(f"Counter must be an integer, got {counter!r}")
    if counter < 1 or counter > MAX_COUNTER:
        raise ValueError(f"Counter {counter} is outside 1..{MAX_COUNTER}")

    index, number = divmod(counter - 1, DIGIT_SPACE)
    letters = []
    for _ in range(LETTERS):
        index, digit = divmod(index, 26)
        letters.append(chr(ord("A") + digit))
    return f"{prefix}{''.join(reversed(letters))}{number:0{DIGITS}d}"


def decode(code: str, prefix: str = ID_PREFIX) -> Optional[int]:
    """
    Convert a code back to its counter.

    Returns:
        The counter, or None if the code is not in the fixed shape
    """
    if not is_valid_format(code, prefix):
        return None
    letters = code[len(prefix):len(prefix) + LETTERS]
    number = int(code[len(prefix) + LETTERS:])
    index = 0
    for letter in letters:
        index = index * 26 + (ord(letter) - ord("A"))
    return index * DIGIT_SPACE + number + 1


def is_valid_format(code, prefix: str = ID_PREFIX) -> bool:
    """Shape predicate: prefix + exactly 3 uppercase ASCII letters + exactly 5 digits."""
    if not isinstance(code, str):
        return False
    return _pattern(prefix).match(code) is not None


def normalize_id(raw, prefix: str = ID_PREFIX) -> str:
    """
    Normalize a user-supplied ID.

    Trims whitespace, upper-cases anything that is a valid code once
    upper-cased, and zero-pads old 1-4 digit numeric IDs. Anything else is
    returned trimmed, unchanged.
    """
    trimmed = ("" if raw is None else str(raw)).strip()
    if is_valid_format(trimmed.upper(), prefix):
        return trimmed.upper()
    if _LEGACY_NUMERIC.match(trimmed):
        return trimmed.zfill(4)
    return trimmed
