"""
Source analyzer: turns a patch fragment into top-level Definitions.

A fragment is ordinary Python source. Namespace directives
(``# namespace: dotted.name`` as a comment starting at column 0) split it
into namespace scopes, so a single fragment may redefine units in several
modules at once.

Units are parsed with LibCST, so their comments and formatting are kept for
re-rendering.
"""

from __future__ import annotations

import ast
import io
import logging
import re
import tokenize
from dataclasses import dataclass, field
from typing import Optional

import libcst as cst
from libcst.metadata import MetadataWrapper, PositionProvider

logger = logging.getLogger(__name__)

NAMESPACE_NAME = re.compile(r"[A-Za-z_]\w*(?:\.[A-Za-z_]\w*)*")
NAMESPACE_DIRECTIVE = re.compile(r"#[ \t]*namespace:[ \t]*([A-Za-z_]\w*(?:\.[A-Za-z_]\w*)*)[ \t]*")

FunctionNode = cst.FunctionDef
UnitNode = cst.BaseCompoundStatement  # ClassDef or FunctionDef
ImportNode = cst.SimpleStatementLine  # one import per line

_IMPORT_TYPES = (cst.Import, cst.ImportFrom)


class ParseError(Exception):
    """Raised when a patch fragment is not valid Python."""

    def __init__(self, message: str, lineno: Optional[int] = None,
                 offset: Optional[int] = None) -> None:
        super().__init__(message)
        self.lineno = lineno
        self.offset = offset


def qualify(namespace: Optional[str], name: str) -> str:
    """Join *namespace* and *name*; the namespace is omitted when empty."""
    return f"{namespace}.{name}" if namespace else name


def namespace_line(namespace: str) -> str:
    """Render the directive that opens a namespace scope."""
    return f"# namespace: {namespace}"


def directive_namespace(comment: str) -> Optional[str]:
    """Namespace named by a directive comment, or None for any other comment."""
    m = NAMESPACE_DIRECTIVE.fullmatch(comment.rstrip())
    return m.group(1) if m else None


@dataclass
class Definition:
    """One top-level unit found in a fragment."""
    kind: str  # "class"|"function"
    name: str
    node: UnitNode
    namespace: Optional[str] = None
    imports: list[ImportNode] = field(default_factory=list)
    members: dict[str, FunctionNode] = field(default_factory=dict)

    @property
    def qualified_name(self) -> str:
        return qualify(self.namespace, self.name)

    @property
    def is_class(self) -> bool:
        return self.kind == "class"


@dataclass
class ExtractedDefinitions:
    """Definitions of one fragment, split by kind in source order."""
    classes: list[Definition] = field(default_factory=list)
    functions: list[Definition] = field(default_factory=list)

    def __iter__(self):
        yield from self.classes
        yield from self.functions

    def __len__(self) -> int:
        return len(self.classes) + len(self.functions)


class SourceAnalyzer:
    """Parse patch fragments into Definitions."""

    def extract(self, source: str, namespace: Optional[str] = None) -> list[Definition]:
        """Return every unit declared in *source*, classes first.

        Raises
        ------
        ParseError
            When the fragment does not parse or *namespace* is not a dotted name.
        """
        return list(self.extract_definitions(source, namespace))

    def extract_definitions(
        self,
        source: str,
        namespace: Optional[str] = None,
    ) -> ExtractedDefinitions:
        """Parse *source* (optionally under *namespace*) into Definitions."""
        if namespace and not NAMESPACE_NAME.fullmatch(namespace):
            raise ParseError(f"Invalid namespace {namespace!r}: expected a dotted module name")

        full_source = self.prepend_namespace(source, namespace)
        module = self._parse(full_source)
        scopes = self._scope_boundaries(full_source)
        positions = MetadataWrapper(module, unsafe_skip_copy=True).resolve(PositionProvider)

        result = ExtractedDefinitions()
        outer_imports: list[ImportNode] = []
        scope_imports: list[ImportNode] = []
        current_scope: Optional[str] = None

        for stmt in module.body:
            stmt_scope = self._scope_at(scopes, positions[stmt].start.line)
            if stmt_scope != current_scope:
                current_scope = stmt_scope
                scope_imports = []

            if isinstance(stmt, cst.SimpleStatementLine):
                imports = self._split_imports(stmt)
                if current_scope is None:
                    outer_imports.extend(imports)
                else:
                    scope_imports.extend(imports)
                continue

            visible = outer_imports + scope_imports if current_scope else list(outer_imports)

            if isinstance(stmt, cst.ClassDef):
                result.classes.append(self._build_class(stmt, current_scope, visible))
            elif isinstance(stmt, cst.FunctionDef):
                result.functions.append(self._build_function(stmt, current_scope, visible))

        logger.debug(
            "[LivePatch] Extracted %d class(es) and %d function(s)",
            len(result.classes), len(result.functions),
        )
        return result

    # ------------------------------------------------------------------
    # Parsing helpers
    # ------------------------------------------------------------------

    @staticmethod
    def prepend_namespace(source: str, namespace: Optional[str]) -> str:
        """Put a namespace directive in front of *source* when one is given."""
        header = f"{namespace_line(namespace)}\n" if namespace else ""
        return f"{header}{source.strip()}\n"

    @staticmethod
    def _parse(source: str) -> cst.Module:
        # ast catches what LibCST's grammar lets through (e.g. misplaced return)
        try:
            ast.parse(source)
        except SyntaxError as exc:
            raise ParseError(
                f"Invalid patch fragment: {exc.msg} (line {exc.lineno})",
                lineno=exc.lineno, offset=exc.offset,
            ) from exc
        except ValueError as exc:
            # e.g. source containing null bytes
            raise ParseError(f"Invalid patch fragment: {exc}") from exc

        try:
            return cst.parse_module(source)
        except cst.ParserSyntaxError as exc:
            raise ParseError(
                f"Invalid patch fragment: {exc.message} (line {exc.raw_line})",
                lineno=exc.raw_line, offset=exc.raw_column,
            ) from exc

    @staticmethod
    def _scope_boundaries(source: str) -> list[tuple[int, str]]:
        """Return ``(line, namespace)`` for every directive, in line order.

        Only real comments count; text inside string literals is never a
        directive.
        """
        boundaries: list[tuple[int, str]] = []
        try:
            for tok in tokenize.generate_tokens(io.StringIO(source).readline):
                if tok.type != tokenize.COMMENT or tok.start[1] != 0:
                    continue
                name = directive_namespace(tok.string)
                if name:
                    boundaries.append((tok.start[0], name))
        except (tokenize.TokenError, SyntaxError) as exc:
            raise ParseError(f"Invalid patch fragment: {exc}") from exc
        return boundaries

    @staticmethod
    def _scope_at(boundaries: list[tuple[int, str]], lineno: int) -> Optional[str]:
        """Namespace in force at *lineno* (the closest preceding directive)."""
        scope: Optional[str] = None
        for line, name in boundaries:
            if line >= lineno:
                break
            scope = name
        return scope

    # ------------------------------------------------------------------
    # Definition builders
    # ------------------------------------------------------------------

    @staticmethod
    def _split_imports(stmt: cst.SimpleStatementLine) -> list[ImportNode]:
        """One single-import line per import statement on *stmt*."""
        imports = [s for s in stmt.body if isinstance(s, _IMPORT_TYPES)]
        if len(imports) == 1 and len(stmt.body) == 1:
            return [stmt.with_changes(leading_lines=())]
        return [
            cst.SimpleStatementLine(body=[s.with_changes(semicolon=cst.MaybeSentinel.DEFAULT)])
            for s in imports
        ]

    @staticmethod
    def _detach(node: UnitNode) -> UnitNode:
        """Drop blank lines and directives above *node*; other comments stay."""
        kept = [
            line for line in node.leading_lines
            if line.comment is not None and directive_namespace(line.comment.value) is None
        ]
        return node.with_changes(leading_lines=kept)

    def _build_class(
        self,
        node: cst.ClassDef,
        namespace: Optional[str],
        imports: list[ImportNode],
    ) -> Definition:
        node = self._detach(node)
        members: dict[str, FunctionNode] = {}
        if isinstance(node.body, cst.IndentedBlock):
            for item in node.body.body:
                if isinstance(item, cst.FunctionDef):
                    members[item.name.value] = item

        return Definition(
            kind="class",
            name=node.name.value,
            node=node,
            namespace=namespace,
            imports=imports,
            members=members,
        )

    def _build_function(
        self,
        node: cst.FunctionDef,
        namespace: Optional[str],
        imports: list[ImportNode],
    ) -> Definition:
        node = self._detach(node)
        return Definition(
            kind="function",
            name=node.name.value,
            node=node,
            namespace=namespace,
            imports=imports,
        )
