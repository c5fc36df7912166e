"""Final text report for a test run."""

from __future__ import annotations

from typing import Iterable, List, Optional

from .clean import FrameFilter, clean_output
from .results import ExecutionResult


def _section(tag: str, lines: Iterable[str], clean: bool, frame_filter: Optional[FrameFilter]) -> Optional[str]:
    kept = [line for line in lines if line]
    if not kept:
        return None
    if clean:
        kept = clean_output(kept, frame_filter)
    body = "\n".join(kept)
    return f"<{tag}>\n{body}\n</{tag}>"


def format_report(
    result: ExecutionResult,
    *,
    clean: bool = True,
    frame_filter: Optional[FrameFilter] = None,
) -> str:
    """Render stdout and stderr between explicit begin/end markers."""
    sections: List[str] = []
    for tag, lines in (("stdout", result.stdout_lines), ("stderr", result.stderr_lines)):
        section = _section(tag, lines, clean, frame_filter)
        if section is not None:
            sections.append(section)
    return "\n".join(sections)


def format_results(result: ExecutionResult) -> str:
    counts = result.counts
    return (
        "<results>\n"
        f"{{:test {counts.total}, :pass {counts.passed}, :fail {counts.fail}, :error {counts.error}}}\n"
        "</results>"
    )


def exit_status(result: ExecutionResult) -> int:
    """``fail + error``; 0 means every test passed."""
    return result.exit_status
