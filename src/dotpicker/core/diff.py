"""Diff generation for dotfile previews.

Compares a creator's file (the new version) against the user's current file
(the old version) and renders a short, readable description of the change.
The comparison is purely textual.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Sequence, Tuple

from .types import DiffKind, DiffResult, ResolvedFileMap

logger = logging.getLogger(__name__)

ADDED = "+ "
REMOVED = "- "
CONTEXT = "  "
ELLIPSIS = "  ..."

Opcode = Tuple[str, int, int, int, int]


def _read_lines(data: bytes) -> List[str]:
    # Terminators are kept so that CRLF and LF lines compare unequal
    return data.decode("utf-8", errors="replace").splitlines(keepends=True)


def _display(line: str) -> str:
    return line.splitlines()[0] if line else line


def line_opcodes(old: Sequence[str], new: Sequence[str]) -> List[Opcode]:
    """Compute a minimal line diff between ``old`` and ``new``.

    Uses Myers' O(ND) algorithm, so the result always has the fewest
    possible added plus removed lines. The edit script is returned as
    ``(tag, i1, i2, j1, j2)`` opcodes in the form produced by
    :meth:`difflib.SequenceMatcher.get_opcodes`, with tags ``equal``,
    ``delete`` and ``insert``.
    """
    n, m = len(old), len(new)
    offset = n + m + 1
    v = [0] * (2 * offset + 1)
    # trace[d] holds the furthest x reached on diagonals -d..d after step d
    trace: List[List[int]] = []

    for d in range(n + m + 1):
        for k in range(-d, d + 1, 2):
            if k == -d or (k != d and v[offset + k - 1] < v[offset + k + 1]):
                x = v[offset + k + 1]
            else:
                x = v[offset + k - 1] + 1
            y = x - k
            while x < n and y < m and old[x] == new[y]:
                x += 1
                y += 1
            v[offset + k] = x
            if x >= n and y >= m:
                return _group_edits(_backtrack(trace, d, n, m))
        trace.append(v[offset - d : offset + d + 1])
    return []


def _backtrack(trace: List[List[int]], depth: int, n: int, m: int) -> List[str]:
    edits: List[str] = []
    x, y = n, m
    for d in range(depth, 0, -1):
        prev = trace[d - 1]
        k = x - y
        if k == -d or (k != d and prev[k - 1 + d - 1] < prev[k + 1 + d - 1]):
            prev_k = k + 1
        else:
            prev_k = k - 1
        prev_x = prev[prev_k + d - 1]
        prev_y = prev_x - prev_k
        while x > prev_x and y > prev_y:
            edits.append("equal")
            x -= 1
            y -= 1
        edits.append("insert" if prev_k == k + 1 else "delete")
        x, y = prev_x, prev_y
    edits.extend("equal" for _ in range(x))
    edits.reverse()
    return edits


def _group_edits(edits: Sequence[str]) -> List[Opcode]:
    opcodes: List[Opcode] = []
    i = j = 0
    for tag in edits:
        i2 = i + (tag != "insert")
        j2 = j + (tag != "delete")
        if opcodes and opcodes[-1][0] == tag:
            _, i1, _, j1, _ = opcodes[-1]
            opcodes[-1] = (tag, i1, i2, j1, j2)
        else:
            opcodes.append((tag, i, i2, j, j2))
        i, j = i2, j2
    return opcodes


def cleanup_opcodes(opcodes: Sequence[Opcode], old: Sequence[str]) -> List[Opcode]:
    """Merge change runs that are only split by a single blank line.

    Adjacent insert and delete runs are merged into one replace, so that a
    rewritten block reads as all of its removals followed by all of its
    additions instead of an interleaving of both.
    """
    merged: List[Opcode] = []
    for tag, i1, i2, j1, j2 in opcodes:
        if merged and tag != "equal":
            prev_tag, pi1, pi2, pj1, pj2 = merged[-1]
            if prev_tag != "equal":
                merged[-1] = ("replace", pi1, i2, pj1, j2)
                continue
            if len(merged) >= 2 and merged[-2][0] != "equal":
                gap = old[pi1:pi2]
                if len(gap) == 1 and not gap[0].strip():
                    merged.pop()
                    _, qi1, _, qj1, _ = merged[-1]
                    merged[-1] = ("replace", qi1, i2, qj1, j2)
                    continue
        merged.append((tag, i1, i2, j1, j2))
    return merged


class DiffEngine:
    """Render differences between a source file and its target.

    Attributes:
        new_file_lines (int): Lines shown before a new file preview is
            truncated.
        collapse_threshold (int): Unchanged runs longer than this collapse.
        context_lines (int): Lines kept at each end of a collapsed run.
    """

    def __init__(
        self, new_file_lines: int = 20, collapse_threshold: int = 6, context_lines: int = 2
    ) -> None:
        self.new_file_lines = new_file_lines
        self.collapse_threshold = collapse_threshold
        self.context_lines = context_lines

    def diff(self, source_path: Path, target_path: Path) -> DiffResult:
        """Compare ``source_path`` (new) with ``target_path`` (old).

        Returns:
            DiffResult: NEW when the target doesn't exist, IDENTICAL when
            both are byte-identical, MODIFIED otherwise.

        Raises:
            OSError: If the source, or an existing target, can't be read.
        """
        source_path = Path(source_path)
        target_path = Path(target_path)
        source_data = source_path.read_bytes()

        try:
            target_data = target_path.read_bytes()
        except (FileNotFoundError, NotADirectoryError):
            lines = _read_lines(source_data)
            return DiffResult(
                source_path=source_path,
                target_path=target_path,
                kind=DiffKind.NEW,
                diff=self.render_new(lines),
                additions=len(lines),
            )

        if source_data == target_data:
            return DiffResult(source_path, target_path, DiffKind.IDENTICAL)

        old = _read_lines(target_data)
        new = _read_lines(source_data)
        opcodes = cleanup_opcodes(line_opcodes(old, new), old)

        additions = sum(j2 - j1 for tag, _, _, j1, j2 in opcodes if tag in ("insert", "replace"))
        deletions = sum(i2 - i1 for tag, i1, i2, _, _ in opcodes if tag in ("delete", "replace"))
        logger.debug("Diff %s -> %s: +%d -%d", target_path, source_path, additions, deletions)

        return DiffResult(
            source_path=source_path,
            target_path=target_path,
            kind=DiffKind.MODIFIED,
            diff=self.render(opcodes, old, new),
            additions=additions,
            deletions=deletions,
        )

    def render_new(self, lines: Sequence[str]) -> str:
        """Render a new file as additions, truncated past ``new_file_lines``."""
        shown = lines[: self.new_file_lines]
        out = [ADDED + _display(line) for line in shown]
        hidden = len(lines) - len(shown)
        if hidden > 0:
            out.append(f"... +{hidden} more lines")
        return "\n".join(out) + "\n" if out else ""

    def render(self, opcodes: Sequence[Opcode], old: Sequence[str], new: Sequence[str]) -> str:
        out: List[str] = []
        for tag, i1, i2, j1, j2 in opcodes:
            if tag == "equal":
                out.extend(self._context(old[i1:i2]))
                continue
            if tag in ("delete", "replace"):
                out.extend(REMOVED + _display(line) for line in old[i1:i2])
            if tag in ("insert", "replace"):
                out.extend(ADDED + _display(line) for line in new[j1:j2])
        return "\n".join(out) + "\n" if out else ""

    def _context(self, lines: Sequence[str]) -> List[str]:
        if len(lines) <= self.collapse_threshold:
            return [CONTEXT + _display(line) for line in lines]
        keep = self.context_lines
        head = [CONTEXT + _display(line) for line in lines[:keep]]
        tail = [CONTEXT + _display(line) for line in lines[len(lines) - keep :]]
        return head + [ELLIPSIS] + tail

    def diff_many(
        self, file_map: ResolvedFileMap, resolve_target: Callable[[str], Path]
    ) -> List[DiffResult]:
        """Diff every entry of a file map, ordered by target path."""
        results = [
            self.diff(source, resolve_target(logical)) for source, logical in file_map.items()
        ]
        results.sort(key=lambda result: str(result.target_path))
        return results


def parse_stats(rendered: str) -> Tuple[int, int]:
    """Count addition and deletion lines in rendered diff text."""
    additions = deletions = 0
    for line in rendered.splitlines():
        if line.startswith(ADDED):
            additions += 1
        elif line.startswith(REMOVED):
            deletions += 1
    return additions, deletions
