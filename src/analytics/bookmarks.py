"""
Bookmarked problems and named problem collections.

Both are stored on the analytics aggregate but not interpreted by it. The
remote column encoding lives in ``src.remote.problem_data``.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator


class BookmarkSet:
    """Insertion-ordered set of bookmarked problem ids."""

    def __init__(self, problem_ids: Iterable[str] = ()):
        self._ids: dict[str, None] = {}
        for problem_id in problem_ids:
            self.add(problem_id)

    def add(self, problem_id: str) -> bool:
        """Add a problem id. Returns False if it was already bookmarked."""
        problem_id = str(problem_id).strip()
        if not problem_id or problem_id in self._ids:
            return False
        self._ids[problem_id] = None
        return True

    def discard(self, problem_id: str) -> bool:
        """Remove a problem id. Returns False if it was not bookmarked."""
        if problem_id not in self._ids:
            return False
        del self._ids[problem_id]
        return True

    def __contains__(self, problem_id: object) -> bool:
        return problem_id in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, BookmarkSet):
            return list(self._ids) == list(other._ids)
        return NotImplemented

    def __repr__(self) -> str:
        return f"BookmarkSet({list(self._ids)!r})"

    def to_list(self) -> list[str]:
        return list(self._ids)

    def copy(self) -> BookmarkSet:
        return BookmarkSet(self._ids)


def remove_problem_from_collections(collections: Any, problem_id: str) -> Any:
    """
    Drop a problem id from every named collection.

    Collections are stored as a list of ``{"problem_ids": [...],
    "problem_count": n, ...}`` objects. Anything else is returned unchanged.
    """
    if not isinstance(collections, list):
        return collections

    updated = []
    for collection in collections:
        if not isinstance(collection, dict):
            updated.append(collection)
            continue
        problem_ids = [pid for pid in collection.get("problem_ids") or [] if pid != problem_id]
        updated.append({**collection, "problem_ids": problem_ids, "problem_count": len(problem_ids)})
    return updated
