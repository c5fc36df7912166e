"""Line-by-line cleaning of raw test output.

Test runners print section headers, ``FAIL in``/``ERROR in`` markers,
``expected:``/``actual:`` pairs and, for errors, the exception's data followed
by a (usually very long) stack trace.  :class:`OutputNormalizer` keeps every
line it does not understand verbatim and in order, protects the exception data
printed after ``actual:`` and only rewrites the stack trace itself: runtime
internals are dropped, recursion is collapsed, and a header reports how many
frames were removed.

    >>> clean_output(["actual: {:a 1 :b 2}", "{:a 1 :b 2}"])
    ['actual: {:a 1 :b 2}', '{:a 1 :b 2}']
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple, Union

_FRAME_RE = re.compile(r"[\w.$]+\s+\([^)]+:\d+\)")
_SUMMARY_RE = re.compile(r"Ran \d+ tests containing \d+ assertions")
_WORD_RE = re.compile(r"[\w$]+")

LIBRARY_NAMESPACES: Tuple[str, ...] = (
    "java.",
    "clojure.",
    "sci.",
    "babashka.",
    "nrepl.",
    "malli.core$",
    "malli.instrument$",
)

INTERNAL_PATTERNS: Tuple[str, ...] = (
    "java.lang.Exception",
    "java.lang.RuntimeException",
    "clojure.lang.ExceptionInfo",
    "clojure.lang.AFn",
    "clojure.lang.RestFn",
    "clojure.lang.LazySeq",
    "clojure.lang.RT",
    "clojure.lang.Compiler",
    "clojure.test$",
    "clojure.core$apply",
    "clojure.core$map",
    "clojure.core$eval",
    "clojure.core$with_bindings",
    "clojure.main$repl",
    "sci.lang.",
    "sci.impl.",
    "sci.core$",
    "babashka.main$",
)

INTERNAL_PREFIXES: Tuple[str, ...] = ("user$eval",)

RECURSION_MARKER = "    ... [Recursion detected - pattern repeats] ..."


class Mode(enum.Enum):
    NORMAL = "normal"
    CAPTURING_PAYLOAD = "capturing-payload"
    CAPTURING_STACK_TRACE = "capturing-stack-trace"


def looks_like_stack_frame(line: str) -> bool:
    trimmed = line.strip()
    return trimmed.startswith("at ") or bool(_FRAME_RE.search(trimmed))


def is_section_header(line: str) -> bool:
    return line.strip().startswith("Testing ")


def is_failure_marker(line: str) -> bool:
    trimmed = line.strip()
    return trimmed.startswith("ERROR in") or trimmed.startswith("FAIL in")


def is_expected_line(line: str) -> bool:
    return line.strip().startswith("expected:")


def is_actual_line(line: str) -> bool:
    return line.strip().startswith("actual:")


def is_summary_line(line: str) -> bool:
    return bool(_SUMMARY_RE.search(line.strip()))


def is_end_marker(line: str) -> bool:
    trimmed = line.strip()
    return (
        not trimmed
        or trimmed.startswith("Ran ")
        or is_failure_marker(line)
        or is_section_header(line)
    )


@dataclass
class FrameFilter:
    """Decides which stack frames are runtime noise."""

    library_namespaces: Sequence[str] = LIBRARY_NAMESPACES
    internal_patterns: Sequence[str] = INTERNAL_PATTERNS
    internal_prefixes: Sequence[str] = INTERNAL_PREFIXES
    application_file: "re.Pattern[str]" = field(default_factory=lambda: re.compile(r"\.cljs?:\d+\)"))
    max_frames: int = 20
    recursion_window: int = 10
    recursion_head: int = 8
    recursion_tail: int = 2

    def is_application_frame(self, frame: str) -> bool:
        if any(ns in frame for ns in self.library_namespaces):
            return False
        return bool(self.application_file.search(frame))

    def is_internal_frame(self, frame: str) -> bool:
        if self.is_application_frame(frame):
            return False
        return any(p in frame for p in self.internal_patterns) or frame.startswith(tuple(self.internal_prefixes))

    def parse_frames(self, lines: Iterable[str]) -> List[str]:
        frames = []
        for line in lines:
            trimmed = line.strip()
            if trimmed.startswith("at "):
                frames.append(trimmed[3:])
            elif _WORD_RE.search(trimmed) and "(" in trimmed:
                frames.append(trimmed)
        return frames

    def detect_recursion(self, frames: Sequence[str]) -> bool:
        window = self.recursion_window
        if len(frames) < 2 * window:
            return False
        sample = list(frames[:window])
        for repeat in (1, 2):
            if list(frames[repeat * window:(repeat + 1) * window]) == sample:
                return True
        return False

    def clean(self, lines: Sequence[str]) -> List[str]:
        """Return the formatted, filtered block for a buffered stack trace."""
        raw = self.parse_frames(lines)
        kept = [frame for frame in raw if not self.is_internal_frame(frame)]
        filtered = len(raw) - len(kept)
        if filtered > 0:
            header = f"    Stack trace (cleaned - {filtered} internal frames filtered):"
        else:
            header = "    Stack trace:"
        block = [header]
        if self.detect_recursion(kept):
            block.extend(f"    {frame}" for frame in kept[:self.recursion_head])
            block.append(RECURSION_MARKER)
            block.extend(f"    {frame}" for frame in kept[-self.recursion_tail:])
        else:
            block.extend(f"    {frame}" for frame in kept[:self.max_frames])
        return block


class OutputNormalizer:
    """Stateful line classifier; feed lines, then call :meth:`finish`."""

    def __init__(self, frame_filter: Optional[FrameFilter] = None) -> None:
        self.frame_filter = frame_filter or FrameFilter()
        self.mode = Mode.NORMAL
        self.output: List[str] = []
        self.frame_buffer: List[str] = []
        self.pending_header: Optional[str] = None

    def feed(self, line: str) -> None:
        while not self._process(line):
            pass

    def finish(self) -> List[str]:
        if self.mode is Mode.CAPTURING_STACK_TRACE:
            self._flush_stack_trace()
        return self.output

    def _process(self, line: str) -> bool:
        """Handle ``line``; ``False`` means it must be processed again."""
        if self.mode is Mode.NORMAL:
            self._process_normal(line)
            return True
        if self.mode is Mode.CAPTURING_PAYLOAD:
            self._process_payload(line)
            return True
        return self._process_stack_trace(line)

    def _process_normal(self, line: str) -> None:
        if is_section_header(line):
            self.pending_header = None
            self.output.extend(["", line])
        elif is_failure_marker(line):
            self.pending_header = line
            self.output.extend(["", line])
        elif self.pending_header and not is_expected_line(line) and not is_actual_line(line):
            self.output.append(line)
        elif is_expected_line(line):
            self.pending_header = None
            self.output.append(line)
        elif is_actual_line(line):
            self.mode = Mode.CAPTURING_PAYLOAD
            self.output.append(line)
        elif is_summary_line(line):
            self.output.extend(["", line])
        elif line.strip():
            self.output.append(line)

    def _process_payload(self, line: str) -> None:
        if looks_like_stack_frame(line):
            self.mode = Mode.CAPTURING_STACK_TRACE
            self.frame_buffer = [line]
        elif is_end_marker(line):
            self.mode = Mode.NORMAL
            self.output.append(line)
        else:
            self.output.append(line)

    def _process_stack_trace(self, line: str) -> bool:
        if looks_like_stack_frame(line) or not is_end_marker(line):
            self.frame_buffer.append(line)
            return True
        self._flush_stack_trace()
        return False

    def _flush_stack_trace(self) -> None:
        self.output.extend(self.frame_filter.clean(self.frame_buffer))
        self.frame_buffer = []
        self.mode = Mode.NORMAL


def clean_output(lines: Union[str, Iterable[str]], frame_filter: Optional[FrameFilter] = None) -> List[str]:
    """Normalize raw output given as text or as a sequence of lines."""
    if isinstance(lines, str):
        lines = lines.splitlines()
    normalizer = OutputNormalizer(frame_filter)
    for line in lines:
        normalizer.feed(line)
    return normalizer.finish()
