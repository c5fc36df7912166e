"""Execution results and the aggregator that merges per-unit results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional

from . import edn

FAILURES_HEADER = "=== DETAILED FAILURES ==="


@dataclass
class Counts:
    total: int = 0
    passed: int = 0
    fail: int = 0
    error: int = 0

    def __add__(self, other: "Counts") -> "Counts":
        return Counts(
            total=self.total + other.total,
            passed=self.passed + other.passed,
            fail=self.fail + other.fail,
            error=self.error + other.error,
        )

    @classmethod
    def from_map(cls, values: Optional[Mapping[Any, Any]]) -> "Counts":
        """Read ``{:test :pass :fail :error}``; absent counters are 0."""
        values = values or {}

        def _get(name: str) -> int:
            raw = values.get(edn.kw(name), values.get(name))
            try:
                return int(raw) if raw is not None else 0
            except (TypeError, ValueError):
                return 0

        return cls(total=_get("test"), passed=_get("pass"), fail=_get("fail"), error=_get("error"))


@dataclass
class FailureRecord:
    kind: str
    name: str
    expected: Any = None
    actual: Any = None
    message: Optional[str] = None
    context: List[str] = field(default_factory=list)

    @classmethod
    def from_map(cls, entry: Mapping[Any, Any]) -> "FailureRecord":
        def _get(name: str) -> Any:
            return entry.get(edn.kw(name), entry.get(name))

        kind = _get("type")
        contexts = _get("testing-contexts") or []
        if isinstance(contexts, (str, edn.Keyword)):
            contexts = [contexts]
        message = _get("message")
        return cls(
            kind=kind.name if isinstance(kind, edn.Keyword) else str(kind or "fail"),
            name=edn.to_text(_get("testing-vars") or ""),
            expected=_get("expected"),
            actual=_get("actual"),
            message=edn.to_text(message) if message is not None else None,
            context=[edn.to_text(item) for item in contexts],
        )

    def render(self) -> List[str]:
        lines = [f"{self.kind.upper()} in {self.name}"]
        if self.context:
            lines.append("Context: " + " > ".join(self.context))
        if self.message:
            lines.append(f"Message: {self.message}")
        lines.append(f"Expected: {edn.to_text(self.expected)}")
        lines.append(f"Actual:   {edn.to_text(self.actual)}")
        lines.append("")
        return lines


@dataclass
class ExecutionResult:
    counts: Counts = field(default_factory=Counts)
    stdout_lines: List[str] = field(default_factory=list)
    stderr_lines: List[str] = field(default_factory=list)
    failures: List[FailureRecord] = field(default_factory=list)

    @property
    def exit_status(self) -> int:
        return self.counts.fail + self.counts.error

    def as_dict(self) -> dict:
        return {
            "total": self.counts.total,
            "pass": self.counts.passed,
            "fail": self.counts.fail,
            "error": self.counts.error,
            "out": list(self.stdout_lines),
            "err": list(self.stderr_lines),
        }


def split_output(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return text.splitlines()


def render_failures(failures: Iterable[FailureRecord]) -> List[str]:
    failures = list(failures)
    if not failures:
        return []
    lines = [FAILURES_HEADER]
    for failure in failures:
        lines.extend(failure.render())
    return lines


def combine(results: Iterable[Optional[ExecutionResult]]) -> ExecutionResult:
    """Merge results in submission order, dropping absent entries.

    ``None`` marks a unit whose call produced no result at all; it must not be
    confused with a unit that ran zero tests, so it contributes nothing.
    """
    combined = ExecutionResult()
    for result in results:
        if result is None:
            continue
        combined.counts = combined.counts + result.counts
        combined.stdout_lines.extend(result.stdout_lines)
        combined.stderr_lines.extend(result.stderr_lines)
        combined.failures.extend(result.failures)
    return combined
