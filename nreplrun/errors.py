"""Error taxonomy for nreplrun.

Every error is fatal to the current invocation and keeps whatever partial
frames and console output were collected so the failure can be diagnosed
afterwards.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class NReplError(RuntimeError):
    """Base class for all nreplrun failures."""

    def __init__(
        self,
        message: str,
        *,
        frames: Optional[Sequence[Dict[str, Any]]] = None,
        out: str = "",
        err: str = "",
    ) -> None:
        super().__init__(message)
        self.frames: List[Dict[str, Any]] = list(frames or [])
        self.out = out
        self.err = err


class ConnectError(NReplError):
    """Raised when the socket cannot be established in time."""


class ProtocolError(NReplError):
    """Raised on malformed or unexpected frames, or a dropped connection."""


class CallTimeoutError(NReplError):
    """Raised when a call does not reach ``done`` before its deadline."""


class StepError(NReplError):
    """An orchestration step did not acknowledge."""


class TargetUnreachable(StepError):
    """The selected sub-environment did not answer the echo round-trip."""


class CollectorInstallError(StepError):
    pass


class ReloadError(StepError):
    pass


class StartError(StepError):
    pass


class EvalError(NReplError):
    """The evaluation produced no usable value."""


class RemoteError(NReplError):
    """The remote signalled an evaluation failure explicitly."""


class PollTimeout(NReplError):
    """No result appeared in the result slot before the poll deadline."""

    def __init__(self, message: str, *, last_raw_value: Optional[str] = None, attempts: int = 0, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.last_raw_value = last_raw_value
        self.attempts = attempts
