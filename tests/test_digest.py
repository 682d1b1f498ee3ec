from __future__ import annotations

import random
import string
from pathlib import Path

from doksnet.digest import DIGEST_HEX_LENGTH, digest, matches, short
from doksnet.extract import extract
from doksnet.partition import parse_partition


def test_digest_is_fixed_length_hex() -> None:
    for text in ("", "Hello, world!", "A" * 10_000, "Hello 世界 🦀"):
        value = digest(text)
        assert len(value) == DIGEST_HEX_LENGTH
        assert all(char in "0123456789abcdef" for char in value)


def test_digest_is_deterministic() -> None:
    assert digest("Consistent content") == digest("Consistent content")


def test_whitespace_and_line_endings_change_digest() -> None:
    variants = ["Hello world", "Hello  world", "Hello world\n", "Hello world\r\n"]
    assert len({digest(text) for text in variants}) == len(variants)


def test_matches_accepts_stored_digest_case_insensitively() -> None:
    stored = digest("payload").upper()
    assert matches("payload", stored)
    assert not matches("payload!", stored)


def test_short_prefix() -> None:
    assert short("abcdef0123456789") == "abcdef01"


def test_extracted_digest_is_stable_across_calls(project: Path) -> None:
    ref = parse_partition("src/app.py:1-2")
    first = digest(extract(ref, project))
    for _ in range(5):
        assert digest(extract(ref, project)) == first


def test_single_character_mutations_always_change_digest() -> None:
    rng = random.Random(1729)
    alphabet = string.ascii_letters + string.digits + " \t\n"
    for _ in range(500):
        base = "".join(rng.choice(alphabet) for _ in range(rng.randint(1, 120)))
        index = rng.randrange(len(base))
        replacement = rng.choice([char for char in alphabet if char != base[index]])
        mutated = base[:index] + replacement + base[index + 1 :]
        assert digest(mutated) != digest(base)
