"""
Exporter: writes the pending source, the original source, or a unified diff
of the two to disk.
"""

from __future__ import annotations

import difflib
import logging
import os
from typing import Optional

from ..config import Config
from .patcher import LivePatcher

logger = logging.getLogger(__name__)

DIFF_HEADER = "--- original\n+++ merged\n"


def build_naive_unified_diff(original: str, merged: str) -> str:
    """Line-by-line diff without any alignment, as a single hunk.

    Both texts are compared position by position; lines missing on one side
    count as absent. Equal lines are kept as context, differing ones become a
    removal followed by an addition.
    """
    orig_lines = original.split("\n")
    merged_lines = merged.split("\n")
    diff: list[str] = []

    for i in range(max(len(orig_lines), len(merged_lines))):
        old = orig_lines[i] if i < len(orig_lines) else None
        new = merged_lines[i] if i < len(merged_lines) else None

        if old == new:
            diff.append(" " + (old or ""))
            continue
        if old is not None:
            diff.append("-" + old)
        if new is not None:
            diff.append("+" + new)

    diff.insert(0, f"@@ -1,{len(orig_lines)} +1,{len(merged_lines)} @@")
    return "\n".join(diff) + "\n"


def build_unified_diff(original: str, merged: str, context: int = 3) -> str:
    """Unified diff body (without file headers) computed with difflib."""
    lines = difflib.unified_diff(
        original.splitlines(),
        merged.splitlines(),
        fromfile="original",
        tofile="merged",
        n=context,
        lineterm="",
    )
    # drop difflib's own ---/+++ header lines
    body = list(lines)[2:]
    return "\n".join(body) + "\n" if body else ""


class Exporter:
    """File export for a :class:`LivePatcher`."""

    def __init__(self, patcher: LivePatcher, config: Optional[Config] = None) -> None:
        self._patcher = patcher
        self._config = config or patcher.config

    def write_merged_to(self, path: str) -> None:
        self._write(path, self._patcher.pending_source())

    def write_original_to(self, path: str) -> None:
        self._write(path, self._patcher.original_source())

    def write_unified_diff(self, path: str) -> None:
        self._write(path, self.unified_diff())

    def unified_diff(self) -> str:
        """Diff of original against merged source, with ``--- original``/``+++ merged`` header."""
        original = self._patcher.original_source()
        merged = self._patcher.pending_source()

        if self._config.DIFF_BACKEND == "naive":
            return DIFF_HEADER + build_naive_unified_diff(original, merged)
        return DIFF_HEADER + build_unified_diff(original, merged, self._config.DIFF_CONTEXT)

    @staticmethod
    def _write(path: str, content: str) -> None:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        logger.debug("[LivePatch] Wrote %d bytes to %s", len(content), path)
