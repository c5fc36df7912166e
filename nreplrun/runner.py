"""Inline-synchronous evaluation: submit code, wait for one call, decode its value."""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional, Sequence

from . import edn
from .errors import EvalError, ReloadError, RemoteError
from .results import Counts, ExecutionResult, FailureRecord, combine, split_output
from .session import OutputCapture, Session, open_session
from .transport import Frame, TransportConfig, joined_err, joined_out, last_value, remote_failure

LOGGER = logging.getLogger("nreplrun.runner")


def result_from_value(value: Any, frames: Optional[List[Frame]] = None) -> ExecutionResult:
    """Build a result from a decoded value.

    The value is either ``{:result {...counts} :out "…" :err "…"}`` (output
    captured remotely into the value) or a bare counts map.  Output printed by
    the remote during the call itself is appended after the value's own.
    """
    if not isinstance(value, dict):
        raise EvalError(f"expected a map result, got {edn.dumps(value)}", frames=frames)
    inner = value.get(edn.kw("result"))
    if isinstance(inner, dict):
        counts = Counts.from_map(inner)
        out = value.get(edn.kw("out"))
        err = value.get(edn.kw("err"))
    else:
        counts = Counts.from_map(value)
        out = err = None
    failures = [
        FailureRecord.from_map(entry)
        for entry in value.get(edn.kw("failures")) or []
        if isinstance(entry, dict)
    ]
    frames = frames or []
    return ExecutionResult(
        counts=counts,
        stdout_lines=split_output(edn.to_text(out) if out is not None else None) + split_output(joined_out(frames)),
        stderr_lines=split_output(edn.to_text(err) if err is not None else None) + split_output(joined_err(frames)),
        failures=failures,
    )


_REFRESH = "((requiring-resolve 'clojure.tools.namespace.repl/refresh))"


def refresh_code(directories: Sequence[str] = ()) -> str:
    """Form that reloads changed JVM sources, limited to ``directories`` if given."""
    if not directories:
        return _REFRESH
    dirs = " ".join(edn.dumps(str(directory)) for directory in directories)
    return "\n".join(
        [
            "(require 'clojure.tools.namespace.repl)",
            f"(clojure.tools.namespace.repl/set-refresh-dirs {dirs})",
            "(clojure.tools.namespace.repl/refresh)",
        ]
    )


class SyncRunner:
    """Runs code submissions one call at a time on a single session.

    Output the remote prints outside of any call is captured through the
    session's output handler and attached to the result of the call during
    which it arrived.
    """

    def __init__(self, session: Session, *, ns: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.session = session
        self.ns = ns
        self.timeout = timeout
        self.capture = OutputCapture()
        self.session.set_output_handler(self.capture.add_frame)

    def reload(self, directories: Sequence[str] = ()) -> None:
        """Refresh changed namespaces; anything but ``:ok`` aborts the run."""
        frames = self.session.eval(refresh_code(directories), ns=self.ns, timeout=self.timeout)
        side_out, side_err = self.capture.flush()
        out, err = joined_out(frames) + side_out, joined_err(frames) + side_err
        failure = remote_failure(frames)
        value = last_value(frames)
        if failure or value != ":ok":
            raise ReloadError(
                f"reload failed: {failure or value}", frames=frames, out=out, err=err
            )
        LOGGER.info("reloaded %s", ", ".join(directories) if directories else "all changed namespaces")

    def run(self, code: str, ns: Optional[str] = None) -> ExecutionResult:
        frames = self.session.eval(code, ns=ns or self.ns, timeout=self.timeout)
        side_out, side_err = self.capture.flush()
        out, err = joined_out(frames) + side_out, joined_err(frames) + side_err
        failure = remote_failure(frames)
        if failure:
            raise RemoteError(f"remote evaluation failed: {failure}", frames=frames, out=out, err=err)
        raw = last_value(frames)
        if raw is None:
            raise EvalError("evaluation returned no value", frames=frames, out=out, err=err)
        try:
            value = edn.loads(raw)
        except edn.EdnError as exc:
            raise EvalError(f"cannot read returned value: {exc}", frames=frames, out=out, err=err) from exc
        result = result_from_value(value, frames)
        result.stdout_lines.extend(split_output(side_out))
        result.stderr_lines.extend(split_output(side_err))
        return result

    def run_many(self, codes: Iterable[str], *, require_tests: bool = False) -> ExecutionResult:
        """Run independent submissions and combine their results.

        A submission that yields no usable value is dropped rather than
        counted as zero tests.  Transport failures stay fatal.
        """
        results: List[Optional[ExecutionResult]] = []
        for index, code in enumerate(codes):
            try:
                results.append(self.run(code))
            except (EvalError, RemoteError) as exc:
                LOGGER.warning("submission %d produced no result: %s", index, exc)
                if exc.err:
                    LOGGER.debug("submission %d stderr: %s", index, exc.err)
                results.append(None)
        combined = combine(results)
        if require_tests and combined.counts.total == 0:
            raise EvalError(
                "no tests were executed",
                out="\n".join(combined.stdout_lines),
                err="\n".join(combined.stderr_lines),
            )
        return combined


def run_test_code(
    codes: Iterable[str],
    config: Optional[TransportConfig] = None,
    *,
    ns: Optional[str] = None,
    require_tests: bool = True,
    reload: bool = False,
    reload_dirs: Sequence[str] = (),
) -> ExecutionResult:
    """Open a session, run every submission and close the connection.

    With ``reload`` (implied by ``reload_dirs``) changed sources are refreshed
    first and a failed refresh aborts before any submission runs.
    """
    with open_session(config) as session:
        runner = SyncRunner(session, ns=ns)
        if reload or reload_dirs:
            runner.reload(reload_dirs)
        return runner.run_many(codes, require_tests=require_tests)
