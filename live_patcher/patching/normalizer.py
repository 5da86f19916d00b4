"""
Equality normalizer: metadata-free structural keys for syntax-tree nodes.

Units are kept as LibCST nodes so comments and formatting survive
re-rendering. Equality ignores both: the key of a node is the ``ast`` dump of
its rendered code, so two nodes are equal iff they compile to the same
structure. Docstrings, bodies, signatures and decorators all remain
significant.
"""

from __future__ import annotations

import ast
from typing import Iterable, TypeVar

import libcst as cst

NodeT = TypeVar("NodeT", bound=cst.CSTNode)

# Empty module used as the rendering context for detached nodes
_RENDER_CTX = cst.parse_module("")


def source_of(node: cst.CSTNode) -> str:
    """Render a detached LibCST node into source code, comments included."""
    return _RENDER_CTX.code_for_node(node)


def to_ast(node: cst.CSTNode) -> ast.stmt:
    """Compile-ready ``ast`` statement for a top-level LibCST statement."""
    return ast.parse(source_of(node)).body[0]


def clone_node(node: NodeT) -> NodeT:
    """Return an independent deep copy of *node*."""
    return node.deep_clone()


def clone_nodes(nodes: Iterable[NodeT]) -> list[NodeT]:
    """Deep-copy every node in *nodes*, preserving order."""
    return [clone_node(n) for n in nodes]


def normalize(node: cst.CSTNode) -> str:
    """Return the normalized key of *node*.

    Positions, comments and whitespace do not take part in the key.
    """
    tree = ast.parse(source_of(node))
    return ast.dump(tree, annotate_fields=True, include_attributes=False)


def nodes_equal(left: cst.CSTNode, right: cst.CSTNode) -> bool:
    """True when *left* and *right* normalize to the same key."""
    return normalize(left) == normalize(right)


def dedupe_nodes(*groups: Iterable[NodeT]) -> list[NodeT]:
    """Concatenate *groups*, dropping nodes whose normalized key was already seen.

    The first occurrence wins and every returned node is a fresh clone.
    """
    seen: set[str] = set()
    merged: list[NodeT] = []
    for group in groups:
        for node in group:
            key = normalize(node)
            if key in seen:
                continue
            seen.add(key)
            merged.append(clone_node(node))
    return merged
