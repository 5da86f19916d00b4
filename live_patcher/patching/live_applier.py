"""
Live applier: redefines single functions and methods in the running process.

What can be done live depends on a :class:`CodeSwapCapability`, detected once
per patcher:

* :class:`Replaceable`: an existing function is updated in place by swapping
  its code object, so every reference already handed out sees the change.
* :class:`AdditiveOnly`: an existing member must be deleted and re-added.
* :class:`Unavailable`: nothing can be redefined; callers must restart.

A failure while redefining is reported as :attr:`ApplyOutcome.FATAL` and never
propagates.
"""

from __future__ import annotations

import ast
import enum
import inspect
import logging
import types
from typing import Any, Optional

from .analyzer import FunctionNode
from .normalizer import to_ast
from .registry import unwrap_member

logger = logging.getLogger(__name__)


class LiveApplyFailure(Exception):
    """Raised when a live redefinition step fails."""


class ApplyOutcome(enum.Enum):
    APPLIED = "applied"
    NOT_APPLICABLE = "not_applicable"
    FATAL = "fatal"


# ----------------------------------------------------------------------
# Capabilities
# ----------------------------------------------------------------------

class CodeSwapCapability:
    """Base capability: how members of live classes and modules can be redefined."""

    name = "base"
    available = True

    def supports_swap(self) -> bool:
        return False

    def swap(self, current: types.FunctionType, replacement: types.FunctionType) -> None:
        raise LiveApplyFailure(f"{self.name} capability cannot swap functions in place")

    def delete(self, owner: Any, member_name: str) -> None:
        try:
            delattr(owner, member_name)
        except (AttributeError, TypeError) as exc:
            raise LiveApplyFailure(
                f"Cannot delete {member_name} from {owner!r}: {exc}"
            ) from exc

    def add(self, owner: Any, member_name: str, value: Any) -> None:
        setattr(owner, member_name, value)

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"


class Unavailable(CodeSwapCapability):
    name = "unavailable"
    available = False


class AdditiveOnly(CodeSwapCapability):
    name = "additive"


class Replaceable(CodeSwapCapability):
    name = "replaceable"

    def supports_swap(self) -> bool:
        return True

    def swap(self, current: types.FunctionType, replacement: types.FunctionType) -> None:
        if hasattr(current, "__wrapped__") or hasattr(replacement, "__wrapped__"):
            # the body lives in the wrapped function, out of reach of __code__
            raise LiveApplyFailure(f"{current.__qualname__} is a decorator wrapper")
        if not _same_cells(current, replacement):
            raise LiveApplyFailure(f"Closure of {current.__qualname__} refers to other objects")
        current.__code__ = replacement.__code__
        current.__defaults__ = replacement.__defaults__
        current.__kwdefaults__ = replacement.__kwdefaults__
        current.__doc__ = replacement.__doc__
        current.__annotations__ = dict(replacement.__annotations__)


_EMPTY_CELL = object()


def _cell_values(func: types.FunctionType) -> list:
    values = []
    for cell in func.__closure__ or ():
        try:
            values.append(cell.cell_contents)
        except ValueError:
            values.append(_EMPTY_CELL)
    return values


def _same_cells(current: types.FunctionType, replacement: types.FunctionType) -> bool:
    """True when both closures hold the very same objects, cell by cell."""
    left, right = _cell_values(current), _cell_values(replacement)
    return len(left) == len(right) and all(a is b for a, b in zip(left, right))


def _swap_target():
    return None


def detect_capability(mode: str = "auto") -> CodeSwapCapability:
    """Return the capability matching *mode* (``auto`` tests the runtime)."""
    if mode == "off":
        return Unavailable()
    if mode == "additive":
        return AdditiveOnly()
    if mode == "replaceable":
        return Replaceable()

    trial = types.FunctionType(
        _swap_target.__code__, {}, "_livepatch_trial",
    )
    try:
        trial.__code__ = (lambda: None).__code__
    except (AttributeError, TypeError, ValueError):
        logger.info("[LivePatch] Code objects are read-only, using additive redefinition")
        return AdditiveOnly()
    return Replaceable()


# ----------------------------------------------------------------------
# Applier
# ----------------------------------------------------------------------

class LiveApplier:
    """Apply a single function or method tree to a live class or module."""

    def __init__(self, capability: Optional[CodeSwapCapability] = None) -> None:
        self._capability = capability if capability is not None else detect_capability()

    @property
    def capability(self) -> CodeSwapCapability:
        return self._capability

    @property
    def is_capable(self) -> bool:
        return self._capability.available

    def disable(self) -> None:
        """Switch to :class:`Unavailable` for every later call."""
        if self._capability.available:
            logger.info("[LivePatch] Live redefinition disabled")
        self._capability = Unavailable()

    def try_apply(
        self,
        owner: Any,
        member_name: str,
        node: FunctionNode,
    ) -> ApplyOutcome:
        """Redefine *member_name* on *owner* (a live class or module) from *node*.

        Parameters
        ----------
        owner:
            The live class for a method, or the live module for a function.
        member_name:
            Attribute name to (re)define.
        node:
            LibCST ``FunctionDef`` of the new definition.
        """
        if not self._capability.available:
            return ApplyOutcome.NOT_APPLICABLE

        try:
            value = self.compile_member(owner, node)
        except Exception as exc:
            logger.warning(
                "[LivePatch] Could not compile %s for %r: %s", member_name, owner, exc,
            )
            return ApplyOutcome.FATAL

        existing = vars(owner).get(member_name)

        if existing is not None:
            if self._capability.supports_swap() and self._same_kind(existing, value):
                try:
                    self._capability.swap(unwrap_member(existing), unwrap_member(value))
                except LiveApplyFailure as exc:
                    logger.debug("[LivePatch] %s, redefining instead", exc)
                else:
                    logger.debug("[LivePatch] Swapped %s on %r in place", member_name, owner)
                    return ApplyOutcome.APPLIED

            try:
                self._capability.delete(owner, member_name)
            except LiveApplyFailure as exc:
                logger.warning("[LivePatch] Destructive redefinition failed: %s", exc)
                return ApplyOutcome.FATAL

        try:
            self._capability.add(owner, member_name, value)
        except (LiveApplyFailure, AttributeError, TypeError) as exc:
            logger.warning("[LivePatch] Could not add %s to %r: %s", member_name, owner, exc)
            return ApplyOutcome.FATAL

        logger.debug("[LivePatch] Defined %s on %r", member_name, owner)
        return ApplyOutcome.APPLIED

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    def compile_member(self, owner: Any, node: FunctionNode) -> Any:
        """Compile *node* into the value that should live on *owner*.

        Methods are compiled inside a throwaway class body so that zero-argument
        ``super()`` gets a ``__class__`` cell, which is then pointed at *owner*.
        Decorators are applied, so the result may be a staticmethod, a
        classmethod or any other descriptor.
        """
        tree = to_ast(node)
        if inspect.isclass(owner):
            return self._compile_method(owner, tree)
        return self._compile_function(owner, tree)

    @staticmethod
    def _compile_function(module: types.ModuleType, node: ast.stmt) -> Any:
        tree = ast.Module(body=[node], type_ignores=[])
        ast.fix_missing_locations(tree)
        code = compile(tree, f"<livepatch {module.__name__}.{node.name}>", "exec")
        local_ns: dict[str, Any] = {}
        exec(code, vars(module), local_ns)
        return local_ns[node.name]

    @staticmethod
    def _compile_method(owner: type, node: ast.stmt) -> Any:
        holder = ast.ClassDef(
            name=owner.__name__,
            bases=[],
            keywords=[],
            body=[node],
            decorator_list=[],
            type_params=[],
        )
        tree = ast.Module(body=[holder], type_ignores=[])
        ast.fix_missing_locations(tree)
        code = compile(tree, f"<livepatch {owner.__qualname__}.{node.name}>", "exec")

        module = inspect.getmodule(owner)
        glb = vars(module) if module is not None else {"__name__": owner.__module__}
        local_ns: dict[str, Any] = {}
        exec(code, glb, local_ns)
        value = vars(local_ns[owner.__name__])[node.name]

        func = unwrap_member(value)
        if isinstance(func, types.FunctionType):
            func.__qualname__ = f"{owner.__qualname__}.{node.name}"
            _rebind_class_cell(func, owner)
        return value

    @staticmethod
    def _same_kind(existing: Any, value: Any) -> bool:
        """True when both values are the same kind of function wrapper."""
        if type(existing) is not type(value):
            return False
        return isinstance(unwrap_member(existing), types.FunctionType)


def _rebind_class_cell(func: types.FunctionType, owner: type) -> None:
    """Point the ``__class__`` closure cell of *func* at *owner*."""
    if not func.__closure__:
        return
    for name, cell in zip(func.__code__.co_freevars, func.__closure__):
        if name == "__class__":
            cell.cell_contents = owner
