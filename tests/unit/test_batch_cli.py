"""Tests for the ``python -m batchjob`` entry point."""

import asyncio
import logging

import pytest

from batchjob.__main__ import build_sum_executor, main, parse_args
from batchjob.lib.outcome import Failure, Success


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSumExecutor:
    def test_sums_transaction(self):
        executor = build_sum_executor()

        assert asyncio.run(executor(range(5))) == Success(10)

    def test_fails_on_marked_transaction(self):
        executor = build_sum_executor(fail_on=10)

        assert isinstance(asyncio.run(executor(range(10, 20))), Failure)
        assert asyncio.run(executor(range(0, 10))) == Success(45)


class TestMain:
    def test_sequential_run(self, capsys):
        assert main(["--records", "1000", "--transaction-size", "100"]) == 0

        out = capsys.readouterr().out
        assert "Result: 499500" in out
        assert '"transactions_succeeded": 10' in out

    def test_reports_throughput_metric(self, capsys):
        main(["--records", "1000", "--transaction-size", "100"])

        out = capsys.readouterr().out
        assert '"name": "throughput"' in out
        assert '"unit": "records_per_second"' in out
        assert "Run metrics:" in out
        assert "metric_throughput_records_per_second" in out

    def test_concurrent_run(self, capsys):
        exit_code = main(
            ["--records", "1000", "--transaction-size", "100", "--mode", "concurrent"]
        )

        assert exit_code == 0
        assert "Result: 499500" in capsys.readouterr().out

    def test_concurrent_failure_is_skipped(self, capsys):
        main(["--records", "30", "--transaction-size", "10", "--mode", "concurrent", "--fail-on", "1"])

        assert f"Result: {sum(range(30)) - sum(range(10, 20))}" in capsys.readouterr().out

    def test_sequential_failure_halts(self, capsys):
        main(["--records", "30", "--transaction-size", "10", "--fail-on", "1"])

        assert f"Result: {sum(range(10))}" in capsys.readouterr().out

    def test_retry_with_attempt_limit(self, capsys):
        main(
            [
                "--records", "30",
                "--transaction-size", "10",
                "--fail-on", "2",
                "--retry",
                "--max-attempts", "3",
            ]
        )

        out = capsys.readouterr().out
        assert f"Result: {sum(range(20))}" in out
        assert '"retries": 2' in out

    def test_transaction_size_from_environment(self, capsys, monkeypatch):
        monkeypatch.setenv("BATCHJOB_TRANSACTION_SIZE", "250")

        main(["--records", "1000"])

        assert '"transactions_succeeded": 4' in capsys.readouterr().out

    def test_config_file(self, capsys, tmp_path):
        config = tmp_path / "batching.yaml"
        config.write_text("batching:\n  transaction_size: 500\n", encoding="utf-8")

        main(["--records", "1000", "--config", str(config)])

        assert '"transactions_succeeded": 2' in capsys.readouterr().out

    def test_invalid_configuration_exits_with_error(self):
        assert main(["--records", "10", "--transaction-size", "0"]) == 1

    def test_parse_args_defaults(self):
        args = parse_args([])

        assert args.records == 2_000_000
        assert args.mode == "sequential"
        assert args.transaction_size is None
        assert args.retry is False
