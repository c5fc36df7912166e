"""Background test execution against a Shadow-CLJS build.

The orchestrator drives one session through six strictly sequential steps.
Server-side session state (selected build, reloaded namespaces) must not be
interleaved, so every step is one complete call before the next begins:

    1. select_target           switch the session to the build's JS runtime
    2. install_collector        replace the cljs.test report hooks
    3. reload_units            ``(require '<ns> :reload)`` every test namespace
    4. start_execution         kick off ``run-tests``; returns ``:pending``
    5. poll_for_result         peek at the result slot until it is filled
    6. drain_trailing_output   collect output printed after the summary

Output the remote prints while all of this happens, whether attached to a call
or arriving on its own, is accumulated for the final result.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Type

from . import edn
from .collector import ResultCollector
from .errors import (
    CallTimeoutError,
    CollectorInstallError,
    EvalError,
    NReplError,
    PollTimeout,
    ProtocolError,
    ReloadError,
    StartError,
    StepError,
    TargetUnreachable,
)
from .results import Counts, ExecutionResult, FailureRecord, render_failures, split_output
from .session import OutputCapture, Session, open_session
from .transport import Frame, TransportConfig, last_value

LOGGER = logging.getLogger("nreplrun.orchestrator")

CLJS_NS = "cljs.user"
CLJ_NS = "user"


@dataclass
class PollConfig:
    poll_interval: float = 0.025
    poll_timeout: float = 30.0
    drain_quiet: float = 0.2
    drain_limit: float = 5.0


@dataclass
class PollState:
    deadline: float
    attempt: int = 0
    last_raw_value: Optional[str] = None


class AsyncOrchestrator:
    """Runs test namespaces in the background and polls for their results."""

    def __init__(
        self,
        session: Session,
        *,
        config: Optional[PollConfig] = None,
        collector: Optional[ResultCollector] = None,
        call_timeout: Optional[float] = None,
    ) -> None:
        self.session = session
        self.config = config or PollConfig()
        self.collector = collector or ResultCollector()
        self.call_timeout = call_timeout
        self.capture = OutputCapture()
        self.session.set_output_handler(self.capture.add_frame)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def select_target(self, target: str) -> None:
        build = target.lstrip(":")
        LOGGER.debug("switching to build %s", build)
        self._eval("(require 'shadow.cljs.devtools.api)", CLJ_NS)
        self._eval(f"(shadow.cljs.devtools.api/nrepl-select :{build})", CLJ_NS)
        frames = self._eval('(do (aset js/globalThis "__NREPLRUN_PING__" 42) :ok)', CLJS_NS)
        echoed = last_value(frames)
        if echoed != ":ok":
            raise TargetUnreachable(
                f"build {build} did not answer the echo (got {echoed!r})", **self._diagnostics(frames)
            )
        LOGGER.info("selected build %s", build)

    def install_collector(self) -> None:
        self._acknowledged(self.collector.install_code(), CollectorInstallError, "install result collector")
        LOGGER.info("installed result collector")

    def reload_units(self, units: Sequence[str]) -> None:
        requires = " ".join(f"(require '{unit} :reload)" for unit in units)
        self._acknowledged(f"(do {requires} :ok)", ReloadError, "reload test namespaces")
        LOGGER.info("reloaded %s", ", ".join(units))

    def start_execution(self, units: Sequence[str]) -> None:
        quoted = " ".join(f"'{unit}" for unit in units)
        self._acknowledged(f"(do (cljs.test/run-tests {quoted}) :pending)", StartError, "start tests")
        LOGGER.info("started test execution")

    def poll_for_result(self) -> dict:
        state = PollState(deadline=time.monotonic() + self.config.poll_timeout)
        peek = self.collector.peek_code()
        while True:
            if time.monotonic() > state.deadline:
                raise self._poll_timeout(state)
            time.sleep(self.config.poll_interval)
            remaining = max(state.deadline - time.monotonic(), self.config.poll_interval)
            timeout = min(remaining, self.call_timeout) if self.call_timeout else remaining
            try:
                frames = self._eval(peek, CLJS_NS, timeout=timeout)
            except CallTimeoutError as exc:
                if time.monotonic() < state.deadline:
                    raise
                state.attempt += 1
                raise self._poll_timeout(state, exc.frames) from exc
            state.last_raw_value = last_value(frames)
            if state.attempt % 40 == 0:
                LOGGER.debug("poll attempt %d: %r", state.attempt, state.last_raw_value)
            state.attempt += 1
            try:
                value = self.collector.decode(state.last_raw_value)
            except edn.EdnError as exc:
                raise ProtocolError(
                    f"cannot read polled value: {exc}", **self._diagnostics(frames)
                ) from exc
            if value is None:
                continue
            if not isinstance(value, dict):
                raise ProtocolError(
                    f"polled value is not a result map: {state.last_raw_value!r}", **self._diagnostics(frames)
                )
            LOGGER.debug("test result after %d attempts: %s", state.attempt, edn.dumps(value))
            return value

    def drain_trailing_output(self) -> None:
        try:
            frames = self.session.drain(self.config.drain_quiet, self.config.drain_limit)
        except NReplError as exc:
            raise self._with_capture(exc) from exc
        if frames:
            LOGGER.debug("drained %d trailing frames", len(frames))

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------
    def run(self, target: str, units: Sequence[str]) -> ExecutionResult:
        if not units:
            raise EvalError("no test namespaces given")
        self.select_target(target)
        self.install_collector()
        self.reload_units(units)
        self.start_execution(units)
        value = self.poll_for_result()
        self.drain_trailing_output()
        return self.build_result(value)

    def build_result(self, value: dict) -> ExecutionResult:
        failures = [
            FailureRecord.from_map(entry)
            for entry in value.get(edn.kw("failures")) or []
            if isinstance(entry, dict)
        ]
        return ExecutionResult(
            counts=Counts.from_map(value),
            stdout_lines=split_output(self.capture.out_text) + render_failures(failures),
            stderr_lines=split_output(self.capture.err_text),
            failures=failures,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _eval(self, code: str, ns: str, timeout: Optional[float] = None) -> List[Frame]:
        try:
            frames = self.session.eval(code, ns=ns, timeout=timeout or self.call_timeout)
        except NReplError as exc:
            self.capture.add_frames(exc.frames)
            raise self._with_capture(exc) from exc
        self.capture.add_frames(frames)
        return frames

    def _with_capture(self, exc: NReplError) -> NReplError:
        """Same error type, carrying everything captured so far."""
        return type(exc)(str(exc), **self._diagnostics(exc.frames))

    def _poll_timeout(self, state: PollState, frames: Sequence[Frame] = ()) -> PollTimeout:
        return PollTimeout(
            f"no test result after {self.config.poll_timeout:.1f}s",
            last_raw_value=state.last_raw_value,
            attempts=state.attempt,
            **self._diagnostics(list(frames)),
        )

    def _acknowledged(self, code: str, error: Type[StepError], what: str) -> List[Frame]:
        frames = self._eval(code, CLJS_NS)
        if last_value(frames) is None:
            raise error(f"failed to {what}: no value returned", **self._diagnostics(frames))
        return frames

    def _diagnostics(self, frames: List[Frame]) -> dict[str, Any]:
        return {
            "frames": frames,
            "out": self.capture.out_text,
            "err": self.capture.err_text,
        }


def run_shadow_tests(
    target: str,
    units: Sequence[str],
    config: Optional[TransportConfig] = None,
    *,
    poll: Optional[PollConfig] = None,
) -> ExecutionResult:
    """Connect, run ``units`` on build ``target`` and close the connection."""
    config = config or TransportConfig()
    with open_session(config) as session:
        orchestrator = AsyncOrchestrator(session, config=poll, call_timeout=config.call_timeout)
        return orchestrator.run(target, units)
