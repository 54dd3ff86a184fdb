"""Parser for ``git status --porcelain=2 --branch --show-stash`` output.

Only counts are extracted; paths are never inspected. Unknown record kinds
and malformed lines are skipped so newer git versions keep working.
"""

from __future__ import annotations

from .models import Snapshot

COMMIT_LENGTH = 6
_UNBORN_OID = "(initial)"
_DETACHED_HEAD = "(detached)"
_STAGED_KINDS = {
    "A": "staged_added",
    "D": "staged_deleted",
    "M": "staged_modified",
    "R": "staged_renamed",
}


def _parse_count(token: str) -> int:
    if token.isascii() and token.isdigit():
        return int(token)
    return 0


def _parse_header(parts: list[str], fields: dict[str, object]) -> None:
    if len(parts) < 3:
        return
    key, value = parts[1], parts[2]
    if key == "branch.oid":
        fields["commit"] = "" if value == _UNBORN_OID else value[:COMMIT_LENGTH]
    elif key == "branch.head":
        fields["branch"] = "" if value == _DETACHED_HEAD else value
    elif key == "branch.upstream":
        fields["upstream_branch"] = value
    elif key == "branch.ab":
        # "+<ahead> -<behind>"
        fields["ahead"] = _parse_count(value[1:])
        fields["behind"] = _parse_count(parts[3][1:]) if len(parts) > 3 else 0
    elif key == "stash":
        fields["stashed"] = _parse_count(value)


def _parse_ordinary(code: str, counts: dict[str, int]) -> None:
    if len(code) != 2:
        return
    index_state, worktree_state = code[0], code[1]
    if index_state != ".":
        counts["staged"] += 1
        kind = _STAGED_KINDS.get(index_state)
        if kind:
            counts[kind] += 1
    if worktree_state in ("M", "T"):
        counts["modified"] += 1
    elif worktree_state == "D":
        counts["deleted"] += 1


def parse_porcelain(output: str) -> Snapshot:
    fields: dict[str, object] = {}
    counts = {
        "staged": 0,
        "staged_added": 0,
        "staged_deleted": 0,
        "staged_modified": 0,
        "staged_renamed": 0,
        "modified": 0,
        "deleted": 0,
        "renamed": 0,
        "conflicted": 0,
        "untracked": 0,
    }

    for line in output.split("\n"):
        parts = line.rstrip("\r").split(" ")
        marker = parts[0]
        if marker == "#":
            _parse_header(parts, fields)
        elif marker == "1":
            if len(parts) > 1:
                _parse_ordinary(parts[1], counts)
        elif marker == "2":
            counts["renamed"] += 1
        elif marker == "u":
            counts["conflicted"] += 1
        elif marker == "?":
            counts["untracked"] += 1

    return Snapshot(**fields, **counts)
