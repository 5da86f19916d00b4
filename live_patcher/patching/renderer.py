"""
Source renderer: turns stored unit snapshots back into Python source.

Snapshots hold LibCST nodes, so comments and formatting inside a unit come
out exactly as they were written.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from .analyzer import ImportNode, UnitNode, namespace_line
from .normalizer import source_of


@dataclass
class UnitSnapshot:
    """A unit tree together with its namespace and visible imports."""
    node: UnitNode
    namespace: Optional[str] = None
    imports: list[ImportNode] = field(default_factory=list)


class SourceRenderer:
    """Deterministic rendering of snapshots."""

    chunk_separator = "\n\n"

    def render(self, snapshot: UnitSnapshot) -> str:
        """Render imports and unit, prefixed by the namespace directive if any.

        Imports are separated from the unit by a blank line.
        """
        parts: list[str] = []
        if snapshot.namespace:
            parts.append(namespace_line(snapshot.namespace) + "\n")
        if snapshot.imports:
            parts.append("".join(source_of(i) for i in snapshot.imports) + "\n")
        parts.append(source_of(snapshot.node))
        return "".join(parts).rstrip("\n")

    def render_all(
        self,
        functions: Iterable[UnitSnapshot],
        classes: Iterable[UnitSnapshot],
    ) -> str:
        """Render functions, then classes, joined by a blank line."""
        chunks = [self.render(s) for s in functions]
        chunks.extend(self.render(s) for s in classes)
        return self.chunk_separator.join(chunks)
