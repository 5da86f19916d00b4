"""
Patch store: keeps the original and the continuously merged ("pending")
snapshot of every unit seen by the patcher.

Merging is member-level for classes and whole-tree for functions. The latest
patch wins per member, so the order of patches matters.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Iterator, Optional

import libcst as cst

from .analyzer import Definition, FunctionNode, qualify
from .normalizer import clone_node, clone_nodes, dedupe_nodes
from .renderer import SourceRenderer, UnitSnapshot

logger = logging.getLogger(__name__)


@dataclass
class UnitRecord:
    """Original and pending snapshot of one unit, always created together."""
    original: UnitSnapshot
    pending: UnitSnapshot


class PatchStore:
    """Record Definitions and merge repeated patches to the same unit."""

    def __init__(self, renderer: Optional[SourceRenderer] = None) -> None:
        self._renderer = renderer or SourceRenderer()
        self._classes: dict[str, UnitRecord] = {}
        self._functions: dict[str, UnitRecord] = {}

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(self, definition: Definition) -> None:
        """Store *definition*, merging into the pending snapshot if already known."""
        records = self._records_for(definition.kind)
        key = definition.qualified_name
        existing = records.get(key)

        if existing is None:
            records[key] = UnitRecord(
                original=self._snapshot(definition),
                pending=self._snapshot(definition),
            )
            logger.debug("[LivePatch] Tracking new %s %s", definition.kind, key)
            return

        pending = existing.pending
        if definition.is_class:
            for member in definition.members.values():
                pending.node = self._merge_member(pending.node, member)
        else:
            pending.node = clone_node(definition.node)

        pending.namespace = definition.namespace or pending.namespace
        pending.imports = dedupe_nodes(pending.imports, definition.imports)
        logger.debug("[LivePatch] Merged patch into pending %s %s", definition.kind, key)

    def adopt_namespace(self, definition: Definition) -> Definition:
        """Resolve a namespace-less definition against the units already tracked.

        When *definition* has no namespace and its bare name is not tracked,
        but exactly one tracked unit of the same kind has that short name, the
        definition takes that unit's namespace. Otherwise it is returned as is.
        """
        if definition.namespace:
            return definition

        records = self._records_for(definition.kind)
        if definition.name in records:
            return definition

        candidates = [
            record.original.namespace
            for key, record in records.items()
            if record.original.namespace
            and key == qualify(record.original.namespace, definition.name)
        ]
        if len(candidates) != 1:
            return definition

        logger.debug(
            "[LivePatch] %s carries over namespace %s", definition.name, candidates[0],
        )
        return dataclasses.replace(definition, namespace=candidates[0])

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def pending_source(self) -> str:
        """Render all pending snapshots, functions first."""
        return self._renderer.render_all(
            (r.pending for r in self._functions.values()),
            (r.pending for r in self._classes.values()),
        )

    def original_source(self) -> str:
        """Render all original snapshots, functions first."""
        return self._renderer.render_all(
            (r.original for r in self._functions.values()),
            (r.original for r in self._classes.values()),
        )

    def pending_of(self, kind: str, qualified_name: str) -> Optional[UnitSnapshot]:
        record = self._records_for(kind).get(qualified_name)
        return record.pending if record else None

    def original_of(self, kind: str, qualified_name: str) -> Optional[UnitSnapshot]:
        record = self._records_for(kind).get(qualified_name)
        return record.original if record else None

    def qualified_names(self) -> Iterator[tuple[str, str]]:
        """Yield ``(kind, qualified_name)`` in rendering order."""
        for key in self._functions:
            yield "function", key
        for key in self._classes:
            yield "class", key

    def __contains__(self, qualified_name: str) -> bool:
        return qualified_name in self._classes or qualified_name in self._functions

    def __len__(self) -> int:
        return len(self._classes) + len(self._functions)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _records_for(self, kind: str) -> dict[str, UnitRecord]:
        if kind == "class":
            return self._classes
        if kind == "function":
            return self._functions
        raise ValueError(f"Unknown unit kind: {kind!r}")

    @staticmethod
    def _snapshot(definition: Definition) -> UnitSnapshot:
        return UnitSnapshot(
            node=clone_node(definition.node),
            namespace=definition.namespace,
            imports=clone_nodes(definition.imports),
        )

    @staticmethod
    def _merge_member(class_node: cst.ClassDef, member: FunctionNode) -> cst.ClassDef:
        """Return *class_node* with the same-named method replaced, or *member* appended.

        A replaced method keeps the blank lines that separated it from its
        neighbour; the comments written above it come from *member*.
        """
        block = class_node.body
        if isinstance(block, cst.SimpleStatementSuite):
            # "class C: pass" grows into an indented block
            block = cst.IndentedBlock(body=[cst.SimpleStatementLine(body=block.body)])

        comments = [line for line in member.leading_lines if line.comment is not None]
        body = list(block.body)
        for index, stmt in enumerate(body):
            if isinstance(stmt, cst.FunctionDef) and stmt.name.value == member.name.value:
                blanks = [line for line in stmt.leading_lines if line.comment is None]
                body[index] = member.with_changes(leading_lines=blanks + comments)
                break
        else:
            spacing = [cst.EmptyLine()] if body else []
            body.append(member.with_changes(leading_lines=spacing + comments))

        return class_node.with_changes(body=block.with_changes(body=body))
