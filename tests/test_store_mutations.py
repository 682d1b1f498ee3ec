from __future__ import annotations

from pathlib import Path

import pytest

from doksnet.digest import digest
from doksnet.exceptions import (
    AmbiguousId,
    FileNotFound,
    InvalidDescription,
    InvalidPartitionSyntax,
    LineOutOfRange,
    RecordNotFound,
)
from doksnet.extract import extract
from doksnet.partition import PartitionRef, parse_partition
from doksnet.store import EditRequest, LinkStore, load_store


def _digest_of(project: Path, raw: str) -> str:
    return digest(extract(parse_partition(raw), project))


def test_add_digests_both_sides_and_persists(store: LinkStore, project: Path) -> None:
    record = store.add("README.md:3-4", "src/app.py:1-2", "  Greeting  ")
    assert record.doc_partition == "README.md:3-4"
    assert record.code_partition == "src/app.py:1-2"
    assert record.doc_digest == _digest_of(project, "README.md:3-4")
    assert record.code_digest == _digest_of(project, "src/app.py:1-2")
    assert record.description == "Greeting"
    assert load_store(store.path).records == (record,)


def test_add_stores_canonical_rendering(store: LinkStore) -> None:
    record = store.add(" README.md:7-7 ", "src/app.py:", "")
    assert record.doc_partition == "README.md:7"
    assert record.code_partition == "src/app.py"


@pytest.mark.parametrize(
    ("doc", "code", "description", "error"),
    [
        ("README.md:3-4", "src/app.py:1-2", "a|b", InvalidDescription),
        ("README.md:3-4", "src/app.py:1-2", "two\nlines", InvalidDescription),
        ("README.md:4-3", "src/app.py:1-2", "", InvalidPartitionSyntax),
        ("README.md:3-4", "src/missing.py:1", "", FileNotFound),
        ("README.md:3-40", "src/app.py:1-2", "", LineOutOfRange),
    ],
)
def test_failed_add_leaves_store_untouched(
    store: LinkStore,
    doc: str,
    code: str,
    description: str,
    error: type[Exception],
) -> None:
    store.add("README.md:7", "src/app.py:5-6", "Math")
    before = store.path.read_bytes()
    with pytest.raises(error):
        store.add(doc, code, description)
    assert store.path.read_bytes() == before
    assert len(store) == 1


def test_add_retries_colliding_ids(store: LinkStore) -> None:
    ids = iter(["dup-id", "dup-id", "fresh-id"])
    first = store.add("README.md:3", "src/app.py:1", id_factory=lambda: next(ids))
    second = store.add("README.md:4", "src/app.py:2", id_factory=lambda: next(ids))
    assert (first.id, second.id) == ("dup-id", "fresh-id")


def test_find_resolves_unique_prefix(store: LinkStore, sequential_ids) -> None:
    ids = sequential_ids()
    first = store.add("README.md:3-4", "src/app.py:1-2", id_factory=ids)
    second = store.add("README.md:7", "src/app.py:5-6", id_factory=ids)
    assert store.find("00000001") == first
    assert store.find(second.id) == second


def test_find_rejects_ambiguous_prefix(store: LinkStore, sequential_ids) -> None:
    ids = sequential_ids()
    store.add("README.md:3-4", "src/app.py:1-2", id_factory=ids)
    store.add("README.md:7", "src/app.py:5-6", id_factory=ids)
    with pytest.raises(AmbiguousId) as exc:
        store.find("0000")
    assert len(exc.value.matches) == 2


def test_find_unknown_or_empty_prefix(store: LinkStore) -> None:
    store.add("README.md:3-4", "src/app.py:1-2")
    with pytest.raises(RecordNotFound):
        store.find("zzzz")
    with pytest.raises(RecordNotFound):
        store.find("   ")


def test_edit_doc_side_only(store: LinkStore, project: Path) -> None:
    original = store.add("README.md:3-4", "src/app.py:1-2", "Greeting")
    updated = store.edit(original.id[:8], EditRequest(doc_partition="README.md:7"))
    assert updated.id == original.id
    assert updated.doc_partition == "README.md:7"
    assert updated.doc_digest == _digest_of(project, "README.md:7")
    assert updated.code_partition == original.code_partition
    assert updated.code_digest == original.code_digest
    assert updated.description == "Greeting"
    assert load_store(store.path).records == (updated,)


def test_edit_description_only(store: LinkStore) -> None:
    original = store.add("README.md:3-4", "src/app.py:1-2", "Greeting")
    updated = store.edit(original.id, EditRequest(description="Say hello"))
    assert updated.description == "Say hello"
    assert (updated.doc_digest, updated.code_digest) == (
        original.doc_digest,
        original.code_digest,
    )


def test_edit_with_unchanged_partition_keeps_accepted_digest(
    store: LinkStore, project: Path, write_file
) -> None:
    original = store.add("README.md:3-4", "src/app.py:1-2")
    readme = (project / "README.md").read_text(encoding="utf-8")
    write_file(project / "README.md", readme.replace("greeting", "salutation"))
    updated = store.edit(
        original.id,
        EditRequest(doc_partition="README.md:3-4", description="still drifted"),
    )
    assert updated.doc_digest == original.doc_digest
    assert updated.description == "still drifted"


def test_edit_without_changes_does_not_write(store: LinkStore) -> None:
    original = store.add("README.md:3-4", "src/app.py:1-2", "Greeting")
    before = store.path.stat().st_mtime_ns
    assert store.edit(original.id, EditRequest()) == original
    assert store.edit(original.id, EditRequest(description="Greeting")) == original
    assert store.path.stat().st_mtime_ns == before


def test_failed_edit_leaves_store_untouched(store: LinkStore) -> None:
    original = store.add("README.md:3-4", "src/app.py:1-2", "Greeting")
    before = store.path.read_bytes()
    with pytest.raises(LineOutOfRange):
        store.edit(
            original.id,
            EditRequest(code_partition="src/app.py:1-99", description="new"),
        )
    assert store.path.read_bytes() == before
    assert store.records == (original,)


def test_accept_rehashes_current_content(
    store: LinkStore, project: Path, write_file
) -> None:
    original = store.add("README.md:3-4", "src/app.py:1-2")
    write_file(
        project / "src" / "app.py",
        "def greet(name):\n    return name\n\n\ndef add(a, b):\n    return a + b\n",
    )
    accepted = store.accept(original.id)
    assert accepted.doc_digest == original.doc_digest
    assert accepted.code_digest == _digest_of(project, "src/app.py:1-2")
    assert load_store(store.path).records == (accepted,)


def test_accept_requires_exact_id(store: LinkStore) -> None:
    original = store.add("README.md:3-4", "src/app.py:1-2")
    with pytest.raises(RecordNotFound):
        store.accept(original.id[:8])


def test_remove_deletes_record(store: LinkStore) -> None:
    keep = store.add("README.md:7", "src/app.py:5-6")
    doomed = store.add("README.md:3-4", "src/app.py:1-2")
    assert store.remove(doomed.id) == doomed
    assert store.records == (keep,)
    assert load_store(store.path).records == (keep,)


def test_remove_many_is_all_or_nothing(store: LinkStore) -> None:
    first = store.add("README.md:3", "src/app.py:1")
    second = store.add("README.md:4", "src/app.py:2")
    third = store.add("README.md:7", "src/app.py:5-6")
    before = store.path.read_bytes()
    with pytest.raises(RecordNotFound):
        store.remove_many([first.id, "not-a-real-id"])
    assert store.path.read_bytes() == before

    removed = store.remove_many([first.id, third.id])
    assert removed == [first, third]
    assert load_store(store.path).records == (second,)


def test_remove_many_with_nothing_does_not_write(store: LinkStore) -> None:
    store.add("README.md:3", "src/app.py:1")
    before = store.path.stat().st_mtime_ns
    assert store.remove_many([]) == []
    assert store.path.stat().st_mtime_ns == before


def test_exact_id_wins_over_longer_ids(store: LinkStore) -> None:
    ids = iter(["abc", "abcd"])
    short = store.add("README.md:3-4", "src/app.py:1-2", id_factory=lambda: next(ids))
    longer = store.add("README.md:7", "src/app.py:5-6", id_factory=lambda: next(ids))
    assert store.find("abc") == short
    assert store.find("abcd") == longer

    updated = store.edit("abc", EditRequest(description="Greeting"))
    assert updated.id == "abc"
    assert load_store(store.path).get("abc").description == "Greeting"
    with pytest.raises(AmbiguousId):
        store.find("ab")


def test_add_accepts_at_sign_in_path(
    store: LinkStore, project: Path, write_file
) -> None:
    write_file(
        project / "node_modules" / "@scope" / "pkg" / "index.js",
        "export const x = 1;\n",
    )
    record = store.add("README.md:7", "node_modules/@scope/pkg/index.js:1")
    assert record.code_partition == "node_modules/@scope/pkg/index.js:1"
    assert record.code_digest == _digest_of(project, "node_modules/@scope/pkg/index.js:1")


def test_add_rejects_ref_that_reads_back_differently(store: LinkStore) -> None:
    before = store.path.read_bytes()
    with pytest.raises(InvalidPartitionSyntax):
        store.add(PartitionRef(path="build@1-2"), "src/app.py:1")
    assert store.path.read_bytes() == before
