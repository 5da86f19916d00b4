"""Live patching: parse, apply and merge source patches in a running process."""

from .analyzer import SourceAnalyzer, Definition, ExtractedDefinitions, ParseError
from .normalizer import normalize, nodes_equal, clone_node, clone_nodes
from .registry import UnitRegistry
from .live_applier import (
    LiveApplier, ApplyOutcome, LiveApplyFailure,
    CodeSwapCapability, Unavailable, AdditiveOnly, Replaceable, detect_capability,
)
from .renderer import SourceRenderer, UnitSnapshot
from .store import PatchStore, UnitRecord
from .patcher import LivePatcher, PatchReport
from .exporter import Exporter, build_naive_unified_diff, build_unified_diff

__all__ = [
    "SourceAnalyzer", "Definition", "ExtractedDefinitions", "ParseError",
    "normalize", "nodes_equal", "clone_node", "clone_nodes",
    "UnitRegistry",
    "LiveApplier", "ApplyOutcome", "LiveApplyFailure",
    "CodeSwapCapability", "Unavailable", "AdditiveOnly", "Replaceable",
    "detect_capability",
    "SourceRenderer", "UnitSnapshot",
    "PatchStore", "UnitRecord",
    "LivePatcher", "PatchReport",
    "Exporter", "build_naive_unified_diff", "build_unified_diff",
]
