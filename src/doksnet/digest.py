from __future__ import annotations

import hashlib

DIGEST_HEX_LENGTH = 64


def digest(text: str) -> str:
    return hashlib.blake2s(text.encode("utf-8"), digest_size=32).hexdigest()


def same_digest(current: str, expected: str) -> bool:
    # Stored digests may have been hand-edited to upper case or padded.
    return current == expected.strip().lower()


def matches(text: str, expected: str) -> bool:
    return same_digest(digest(text), expected)


def short(value: str, width: int = 8) -> str:
    return value[:width]
