"""
Live patcher: reconciles successive source fragments into one definition set
while trying to apply each change to the running process.

Every fragment is recorded in the :class:`PatchStore`, whether or not it
could be applied live. When live application is impossible the patcher raises
a sticky "needs restart" flag instead of failing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ..config import Config
from .analyzer import Definition, FunctionNode, SourceAnalyzer
from .live_applier import ApplyOutcome, CodeSwapCapability, LiveApplier, detect_capability
from .normalizer import nodes_equal
from .registry import UnitRegistry
from .renderer import SourceRenderer, UnitSnapshot
from .store import PatchStore

logger = logging.getLogger(__name__)


@dataclass
class PatchReport:
    """What a single :meth:`LivePatcher.patch` call did."""
    declared: list[str] = field(default_factory=list)
    applied: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    restart_required: list[str] = field(default_factory=list)
    recorded: list[str] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"{len(self.recorded)} unit(s) recorded, {len(self.declared)} declared, "
            f"{len(self.applied)} applied live, {len(self.unchanged)} unchanged, "
            f"{len(self.restart_required)} need a restart"
        )


class LivePatcher:
    """Apply and record source patches for classes and functions.

    Parameters
    ----------
    config:
        Settings; ``Config.load()`` is used when omitted.
    registry:
        Live-process seam; built from ``config.DEFAULT_MODULE`` when omitted.
    capability:
        Live redefinition capability; detected once from
        ``config.LIVE_CAPABILITY`` when omitted.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        registry: Optional[UnitRegistry] = None,
        capability: Optional[CodeSwapCapability] = None,
        analyzer: Optional[SourceAnalyzer] = None,
        renderer: Optional[SourceRenderer] = None,
    ) -> None:
        self._config = config or Config.load()
        self._analyzer = analyzer or SourceAnalyzer()
        self._renderer = renderer or SourceRenderer()
        self._registry = registry or UnitRegistry(self._config.DEFAULT_MODULE)
        self._applier = LiveApplier(
            capability if capability is not None
            else detect_capability(self._config.LIVE_CAPABILITY)
        )
        self._store = PatchStore(self._renderer)
        self._needs_restart = False
        self.last_report: Optional[PatchReport] = None

        logger.debug(
            "[LivePatch] Patcher ready (capability=%s)", self._applier.capability.name,
        )

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    def patch(self, code: str, namespace: Optional[str] = None) -> PatchReport:
        """Apply *code* to the live process and record it.

        Raises
        ------
        ParseError
            When *code* does not parse. Nothing is applied or recorded.
        """
        extracted = self._analyzer.extract_definitions(code, namespace)
        classes = [self._store.adopt_namespace(d) for d in extracted.classes]
        functions = [self._store.adopt_namespace(d) for d in extracted.functions]

        report = PatchReport()

        for definition in classes:
            self._patch_class(definition, report)

        for definition in functions:
            self._patch_function(definition, report)

        for definition in classes + functions:
            self._store.record(definition)
            report.recorded.append(definition.qualified_name)

        if report.restart_required:
            self._needs_restart = True

        self.last_report = report
        logger.info("[LivePatch] %s", report.summary())
        return report

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def needs_restart(self) -> bool:
        return self._needs_restart

    def is_live_capable(self) -> bool:
        return self._applier.is_capable

    def disable_live_capability(self) -> None:
        """Stop redefining anything live; later changes require a restart."""
        self._applier.disable()

    @property
    def store(self) -> PatchStore:
        return self._store

    @property
    def registry(self) -> UnitRegistry:
        return self._registry

    @property
    def config(self) -> Config:
        return self._config

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def pending_source(self) -> str:
        return self._store.pending_source()

    def original_source(self) -> str:
        return self._store.original_source()

    # ------------------------------------------------------------------
    # Per-unit handling
    # ------------------------------------------------------------------

    def _patch_class(self, definition: Definition, report: PatchReport) -> None:
        fq_name = definition.qualified_name
        if not self._ensure_declared(definition, report):
            return

        owner = self._registry.lookup(definition.namespace, definition.name)
        for member_name, node in definition.members.items():
            label = f"{fq_name}.{member_name}"
            current = self._registry.introspect_source_of(
                definition.namespace, definition.name, member_name,
            )
            self._apply(owner, member_name, node, current, label, report)

    def _patch_function(self, definition: Definition, report: PatchReport) -> None:
        fq_name = definition.qualified_name
        if not self._ensure_declared(definition, report):
            return

        owner = self._registry.module_for(definition.namespace)
        current = self._registry.introspect_source_of(definition.namespace, definition.name)
        self._apply(owner, definition.name, definition.node, current, fq_name, report)

    def _apply(
        self,
        owner: Any,
        member_name: str,
        node: FunctionNode,
        current: Optional[FunctionNode],
        label: str,
        report: PatchReport,
    ) -> None:
        if current is not None and nodes_equal(current, node):
            report.unchanged.append(label)
            return

        outcome = self._applier.try_apply(owner, member_name, node)
        if outcome is ApplyOutcome.APPLIED:
            report.applied.append(label)
            return

        if outcome is ApplyOutcome.FATAL:
            logger.warning("[LivePatch] Live redefinition of %s failed, restart required", label)
        report.restart_required.append(label)

    def _ensure_declared(self, definition: Definition, report: PatchReport) -> bool:
        """Declare *definition* in the live process if it does not exist yet.

        Returns False when declaring failed; the unit then needs a restart.
        """
        if self._registry.exists(definition.namespace, definition.name):
            return True

        snapshot = UnitSnapshot(
            node=definition.node,
            namespace=definition.namespace,
            imports=list(definition.imports),
        )
        source = self._renderer.render(snapshot)
        try:
            self._registry.declare(source, definition.namespace)
        except Exception as exc:
            logger.warning(
                "[LivePatch] Declaring %s failed: %s", definition.qualified_name, exc,
            )
            report.restart_required.append(definition.qualified_name)
            return False

        report.declared.append(definition.qualified_name)
        return True
