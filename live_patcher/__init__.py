"""
live_patcher: redefine classes and functions of a running Python process.

Public API for library usage::

    from live_patcher import LivePatcher

    patcher = LivePatcher()
    patcher.patch("class Greeter:\\n    def greet(self):\\n        return 'hi'", namespace="app.greeting")
    if patcher.needs_restart():
        ...
"""

from .config import Config
from .patching import Exporter, LivePatcher, ParseError, PatchReport

__all__ = ["Config", "Exporter", "LivePatcher", "ParseError", "PatchReport"]
