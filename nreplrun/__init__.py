"""
nreplrun - run tests through an nREPL server and report compactly.

    bencode.py       → wire codec
    edn.py           → reader/printer for returned values
    transport.py     → connection, framing, id-correlated calls
    session.py       → clone handshake, session lifecycle
    runner.py        → inline-synchronous evaluation
    orchestrator.py  → background execution with polling (Shadow-CLJS)
    collector.py     → remote result slot and report hooks
    clean.py         → output normalizer / stack trace filtering
    results.py       → execution results and aggregation
    report.py        → final text report and exit status
"""

from .clean import FrameFilter, OutputNormalizer, clean_output  # noqa: F401
from .collector import ResultCollector  # noqa: F401
from .config import RunnerConfig, configure_logging  # noqa: F401
from .errors import (  # noqa: F401
    CallTimeoutError,
    CollectorInstallError,
    ConnectError,
    EvalError,
    NReplError,
    PollTimeout,
    ProtocolError,
    ReloadError,
    RemoteError,
    StartError,
    StepError,
    TargetUnreachable,
)
from .orchestrator import AsyncOrchestrator, PollConfig, run_shadow_tests  # noqa: F401
from .report import exit_status, format_report, format_results  # noqa: F401
from .results import Counts, ExecutionResult, FailureRecord, combine  # noqa: F401
from .runner import SyncRunner, run_test_code  # noqa: F401
from .session import Session, clone_session, open_session  # noqa: F401
from .transport import NReplTransport, TransportConfig  # noqa: F401

__all__ = [
    "NReplTransport",
    "TransportConfig",
    "Session",
    "clone_session",
    "open_session",
    "SyncRunner",
    "run_test_code",
    "AsyncOrchestrator",
    "PollConfig",
    "run_shadow_tests",
    "ResultCollector",
    "OutputNormalizer",
    "FrameFilter",
    "clean_output",
    "Counts",
    "ExecutionResult",
    "FailureRecord",
    "combine",
    "format_report",
    "format_results",
    "exit_status",
    "RunnerConfig",
    "configure_logging",
    "NReplError",
    "ConnectError",
    "ProtocolError",
    "CallTimeoutError",
    "StepError",
    "TargetUnreachable",
    "CollectorInstallError",
    "ReloadError",
    "StartError",
    "EvalError",
    "RemoteError",
    "PollTimeout",
]

__version__ = "0.1.0"
