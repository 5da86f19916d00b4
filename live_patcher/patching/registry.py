"""
Unit registry: the seam through which the patcher talks to the live process.

Everything that compiles a string into a live symbol, or reconstructs a
syntax tree from a loaded object, goes through :class:`UnitRegistry`.
"""

from __future__ import annotations

import importlib
import inspect
import itertools
import logging
import sys
import textwrap
import types
from typing import Any, Optional

import libcst as cst

from .analyzer import FunctionNode, qualify

logger = logging.getLogger(__name__)

_declare_counter = itertools.count(1)


def unwrap_member(value: Any) -> Any:
    """Return the plain function behind a staticmethod/classmethod wrapper."""
    if isinstance(value, (staticmethod, classmethod)):
        return value.__func__
    return value


class UnitRegistry:
    """Resolve, declare and introspect units in the running interpreter.

    Parameters
    ----------
    default_module:
        Name of the module that hosts units patched without a namespace.
        It is created on first declaration.
    """

    def __init__(self, default_module: str = "__livepatch__") -> None:
        self._default_module = default_module

    @property
    def default_module(self) -> str:
        return self._default_module

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def module_name(self, namespace: Optional[str]) -> str:
        return namespace or self._default_module

    def module_for(self, namespace: Optional[str], create: bool = False) -> Optional[types.ModuleType]:
        """Return the live module for *namespace*.

        Unknown modules are imported when possible; with *create* a fresh
        module is registered in ``sys.modules`` as a last resort.
        """
        name = self.module_name(namespace)
        module = sys.modules.get(name)
        if module is not None:
            return module

        if namespace:
            try:
                return importlib.import_module(name)
            except ImportError:
                pass
            except Exception as exc:
                # a broken module is treated as absent; its units get declared afresh
                logger.warning("[LivePatch] Importing %s failed: %s", name, exc)

        if not create:
            return None

        module = types.ModuleType(name)
        sys.modules[name] = module
        logger.info("[LivePatch] Created module %s for patched units", name)
        return module

    def lookup(self, namespace: Optional[str], name: str) -> Optional[Any]:
        """Return the live object *name* in *namespace*, or None."""
        module = self.module_for(namespace)
        if module is None:
            return None
        return vars(module).get(name)

    def exists(self, namespace: Optional[str], name: str) -> bool:
        return self.lookup(namespace, name) is not None

    # ------------------------------------------------------------------
    # Declaration
    # ------------------------------------------------------------------

    def declare(self, rendered_source: str, namespace: Optional[str]) -> types.ModuleType:
        """Compile *rendered_source* and execute it inside the namespace module.

        Exceptions raised while executing the source propagate to the caller.
        """
        module = self.module_for(namespace, create=True)
        filename = f"<livepatch-declare-{next(_declare_counter)}>"
        code = compile(rendered_source, filename, "exec")
        exec(code, vars(module))
        logger.debug("[LivePatch] Declared units from %s in %s", filename, module.__name__)
        return module

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def introspect_source_of(
        self,
        namespace: Optional[str],
        name: str,
        member: Optional[str] = None,
    ) -> Optional[FunctionNode]:
        """Rebuild the currently active tree of a function or method.

        With *member* the method of that name owned directly by the class
        *name* is introspected; otherwise the module-level function *name*.
        Returns None when the object is absent or its source is unavailable
        (for example, when it was compiled from a string).
        """
        target = self.lookup(namespace, name)
        if target is None:
            return None

        if member is not None:
            if not inspect.isclass(target):
                return None
            target = unwrap_member(vars(target).get(member))
            wanted = member
        else:
            wanted = name

        if not inspect.isfunction(target):
            return None

        try:
            source = inspect.getsource(target)
        except (OSError, TypeError):
            logger.debug(
                "[LivePatch] No source available for %s",
                qualify(namespace, f"{name}.{member}" if member else name),
            )
            return None

        try:
            tree = cst.parse_module(textwrap.dedent(source))
        except cst.ParserSyntaxError:
            return None

        for node in tree.body:
            if isinstance(node, cst.FunctionDef) and node.name.value == wanted:
                return node
        return None
