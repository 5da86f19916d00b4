"""
Diff display: colored rendering of the original-vs-merged unified diff.
"""

from __future__ import annotations

_RESET = "\033[0m"

# Checked in order: file headers before single-character prefixes
_PREFIX_STYLES = (
    ("--- ", "\033[1;31m"),  # bold red: original
    ("+++ ", "\033[1;32m"),  # bold green: merged
    ("@@", "\033[36m"),
    ("+", "\033[32m"),
    ("-", "\033[31m"),
)


def _style_for(line: str) -> str | None:
    for prefix, style in _PREFIX_STYLES:
        if line.startswith(prefix):
            return style
    return None


def format_colored_diff(diff_text: str) -> str:
    """Add ANSI colors to a unified diff of original against merged source.

    Context lines are left uncolored.
    """
    colored: list[str] = []
    for line in diff_text.splitlines():
        style = _style_for(line)
        colored.append(f"{style}{line}{_RESET}" if style else line)
    return "\n".join(colored)


def has_hunks(diff_text: str) -> bool:
    """True when *diff_text* carries at least one ``@@`` hunk."""
    return any(line.startswith("@@") for line in diff_text.splitlines())


def show_diff(diff_text: str, color: bool = True) -> None:
    """Print *diff_text*, colored unless *color* is False."""
    if not has_hunks(diff_text):
        print("  (no differences between original and merged source)")
        return
    print(f"\n{'─' * 60}")
    print(format_colored_diff(diff_text) if color else diff_text)
