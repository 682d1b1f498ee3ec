from __future__ import annotations

from pathlib import Path

DOC_FILE_NAMES: frozenset[str] = frozenset(
    {
        "readme.md",
        "readme.rst",
        "readme.txt",
        "readme",
        "docs.md",
        "documentation.md",
        "guide.md",
        "manual.md",
    }
)


def _is_doc_name(name: str) -> bool:
    lowered = name.lower()
    return lowered in DOC_FILE_NAMES or lowered.endswith(".md")


def _doc_sort_key(name: str) -> tuple[int, str]:
    return (0 if name.lower().startswith("readme") else 1, name)


def find_documentation_files(directory: Path) -> list[str]:
    """List documentation candidates directly inside ``directory``.

    README files sort first; the rest follow in lexical order.
    """
    names = [
        entry.name
        for entry in directory.iterdir()
        if entry.is_file() and _is_doc_name(entry.name)
    ]
    return sorted(names, key=_doc_sort_key)
