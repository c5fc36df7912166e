import logging

import nreplrun
from nreplrun.config import RunnerConfig, configure_logging
from nreplrun.report import exit_status, format_report, format_results
from nreplrun.results import Counts, ExecutionResult


def _result(out=(), err=(), **counts) -> ExecutionResult:
    return ExecutionResult(counts=Counts(**counts), stdout_lines=list(out), stderr_lines=list(err))


def test_format_report_wraps_sections_and_drops_blank_lines() -> None:
    result = _result(out=["Testing a.core-test", "", "Ran 1 tests"], err=["warning: x"])
    assert format_report(result, clean=False) == (
        "<stdout>\nTesting a.core-test\nRan 1 tests\n</stdout>\n<stderr>\nwarning: x\n</stderr>"
    )


def test_format_report_omits_empty_sections() -> None:
    assert format_report(_result(out=["only"]), clean=False) == "<stdout>\nonly\n</stdout>"
    assert format_report(_result(out=["", ""]), clean=False) == ""


def test_format_report_cleans_stack_traces() -> None:
    out = [
        "  actual: boom",
        "at clojure.lang.RestFn.invoke (RestFn.java:1)",
        "at com.example.app$f.invoke (app.clj:1)",
    ]
    report = format_report(_result(out=out))
    assert "cleaned - 1 internal frames filtered" in report
    assert "RestFn" not in report
    assert "    com.example.app$f.invoke (app.clj:1)" in report

    raw = format_report(_result(out=out), clean=False)
    assert "at clojure.lang.RestFn.invoke (RestFn.java:1)" in raw


def test_format_results_prints_counters() -> None:
    result = _result(total=5, passed=3, fail=1, error=1)
    assert format_results(result) == "<results>\n{:test 5, :pass 3, :fail 1, :error 1}\n</results>"
    assert exit_status(result) == 2


def test_runner_config_defaults() -> None:
    config = RunnerConfig.from_env({})
    assert config.transport.host == "127.0.0.1"
    assert config.transport.port == 7888
    assert config.transport.legacy_done is False
    assert config.poll.poll_interval == 0.025
    assert config.poll.poll_timeout == 30.0
    assert config.clean_output is True
    assert config.log_level == "WARNING"


def test_runner_config_from_env() -> None:
    config = RunnerConfig.from_env(
        {
            "NREPLRUN_HOST": "repl.local",
            "NREPLRUN_PORT": "9000",
            "NREPLRUN_CALL_TIMEOUT": "3.5",
            "NREPLRUN_POLL_TIMEOUT": "12",
            "NREPLRUN_LEGACY_DONE": "yes",
            "NREPLRUN_CLEAN": "0",
            "NREPLRUN_LOG": "DEBUG",
        }
    )
    assert config.transport.host == "repl.local"
    assert config.transport.port == 9000
    assert config.transport.call_timeout == 3.5
    assert config.poll.poll_timeout == 12.0
    assert config.transport.legacy_done is True
    assert config.clean_output is False
    assert config.log_level == "DEBUG"


def test_runner_configs_do_not_share_state() -> None:
    first = RunnerConfig.from_env({"NREPLRUN_PORT": "1234"})
    second = RunnerConfig.from_env({})
    assert first.transport.port == 1234
    assert second.transport.port == 7888


def test_configure_logging_sets_root_level(monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))
    configure_logging("debug")
    configure_logging("bogus")
    assert calls[0]["level"] == logging.DEBUG
    assert calls[1]["level"] == logging.INFO
    assert "%(name)s" in calls[0]["format"]


def test_package_exports() -> None:
    assert nreplrun.__version__ == "0.1.0"
    for name in nreplrun.__all__:
        assert hasattr(nreplrun, name), name
