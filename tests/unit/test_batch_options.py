"""Tests for batching options and YAML configuration loading."""

import asyncio
from pathlib import Path
from unittest.mock import Mock

import pytest

from batchjob.lib.config_loader import load_batching_options, parse_batching_options
from batchjob.lib.env import env_int, expand_config, expand_env_vars
from batchjob.lib.errors import ConfigurationError
from batchjob.lib.options import BatchingOptions, ProgressInfo, ReducerOptions
from batchjob.lib.resilience import RetryConfig
from batchjob.lib.runner import batch_job


class TestBatchingOptions:
    def test_defaults(self):
        options = BatchingOptions(transaction_size=100)

        assert options.retry is False
        assert options.on_batch_success is None
        assert options.on_batch_error is None
        assert options.retry_config is None
        assert options.max_concurrency is None
        assert options.validate() is options

    def test_from_dict_accepts_camel_case(self):
        def on_error(error):
            pass

        options = BatchingOptions.from_dict(
            {"transactionSize": 10, "onBatchError": on_error, "retry": True}
        )

        assert options.transaction_size == 10
        assert options.on_batch_error is on_error
        assert options.retry is True

    def test_from_dict_builds_retry_config(self):
        options = BatchingOptions.from_dict(
            {"transaction_size": 5, "retry": True, "retry_config": {"max_attempts": 2}}
        )

        assert isinstance(options.retry_config, RetryConfig)
        assert options.retry_config.max_attempts == 2

    def test_from_dict_rejects_unknown_options(self):
        with pytest.raises(ConfigurationError, match="Unknown batching options: batch_size"):
            BatchingOptions.from_dict({"transaction_size": 5, "batch_size": 10})

    def test_from_dict_requires_transaction_size(self):
        with pytest.raises(ConfigurationError, match="transaction_size is required"):
            BatchingOptions.from_dict({"retry": True})

    def test_non_callable_callback_rejected(self):
        with pytest.raises(ConfigurationError, match="on_batch_success must be callable"):
            BatchingOptions(transaction_size=1, on_batch_success="print").validate()

    def test_coerce_rejects_other_types(self):
        with pytest.raises(ConfigurationError):
            BatchingOptions.coerce(50)

    def test_to_dict_reports_callbacks_by_presence(self):
        options = BatchingOptions(transaction_size=3, on_batch_error=print)

        assert options.to_dict() == {
            "transaction_size": 3,
            "retry": False,
            "retry_config": None,
            "max_concurrency": None,
            "has_on_batch_success": False,
            "has_on_batch_error": True,
        }


class TestReducerOptions:
    def test_coerce_from_mapping(self):
        options = ReducerOptions.coerce({"reducer": max, "accumulator": 0})

        assert options.reducer is max
        assert options.accumulator == 0

    def test_missing_keys_reported(self):
        with pytest.raises(ConfigurationError, match="accumulator"):
            ReducerOptions.coerce({"reducer": max})

    def test_reducer_must_be_callable(self):
        with pytest.raises(ConfigurationError, match="reducer must be callable"):
            ReducerOptions.coerce(ReducerOptions(reducer=None, accumulator=0))


class TestProgressInfo:
    def test_to_dict(self):
        info = ProgressInfo(remaining=5, step=1, transaction_size=10, total=25)

        assert info.to_dict() == {
            "remaining": 5,
            "step": 1,
            "transaction_size": 10,
            "total": 25,
        }


class TestEnvExpansion:
    def test_expands_both_syntaxes(self, monkeypatch):
        monkeypatch.setenv("BATCH_SIZE", "500")

        assert expand_env_vars("${BATCH_SIZE}") == "500"
        assert expand_env_vars("$BATCH_SIZE rows") == "500 rows"

    def test_missing_variable_kept_unless_strict(self, monkeypatch):
        monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)

        assert expand_env_vars("${NOT_SET_ANYWHERE}") == "${NOT_SET_ANYWHERE}"
        with pytest.raises(KeyError):
            expand_env_vars("${NOT_SET_ANYWHERE}", strict=True)

    def test_expand_config_recurses(self, monkeypatch):
        monkeypatch.setenv("ATTEMPTS", "4")

        result = expand_config({"a": ["${ATTEMPTS}", 1], "b": {"c": "$ATTEMPTS"}, "d": True})

        assert result == {"a": ["4", 1], "b": {"c": "4"}, "d": True}

    def test_env_int(self, monkeypatch):
        monkeypatch.setenv("BATCHJOB_TRANSACTION_SIZE", " 250 ")
        assert env_int("BATCHJOB_TRANSACTION_SIZE") == 250

        monkeypatch.setenv("BATCHJOB_TRANSACTION_SIZE", "")
        assert env_int("BATCHJOB_TRANSACTION_SIZE", 7) == 7

        monkeypatch.setenv("BATCHJOB_TRANSACTION_SIZE", "lots")
        with pytest.raises(ValueError):
            env_int("BATCHJOB_TRANSACTION_SIZE")


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "batching.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadBatchingOptions:
    def test_loads_batching_section(self, tmp_path):
        path = _write(
            tmp_path,
            """
batching:
  transaction_size: 250
  retry: true
  retry_config:
    max_attempts: 5
    backoff_seconds: 0.5
  max_concurrency: 8
""",
        )

        options = load_batching_options(path)

        assert options.transaction_size == 250
        assert options.retry is True
        assert options.retry_config.max_attempts == 5
        assert options.retry_config.backoff_seconds == 0.5
        assert options.max_concurrency == 8

    def test_attaches_callbacks(self, tmp_path):
        path = _write(tmp_path, "transaction_size: 10\n")

        def on_success(value, progress):
            pass

        options = load_batching_options(path, on_batch_success=on_success, on_batch_error=print)

        assert options.on_batch_success is on_success
        assert options.on_batch_error is print

    def test_expands_environment_values(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ORDERS_BATCH_SIZE", "1000")
        monkeypatch.setenv("ORDERS_RETRY", "yes")
        path = _write(
            tmp_path,
            "transaction_size: ${ORDERS_BATCH_SIZE}\nretry: ${ORDERS_RETRY}\n",
        )

        options = load_batching_options(path)

        assert options.transaction_size == 1000
        assert options.retry is True

    def test_loads_env_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("FROM_DOTENV_SIZE", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("FROM_DOTENV_SIZE=42\n", encoding="utf-8")
        path = _write(tmp_path, "transaction_size: ${FROM_DOTENV_SIZE}\n")

        try:
            options = load_batching_options(path, env_file=env_file)
        finally:
            monkeypatch.delenv("FROM_DOTENV_SIZE", raising=False)

        assert options.transaction_size == 42

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_batching_options(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = _write(tmp_path, "transaction_size: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_batching_options(path)

    def test_non_mapping_document(self, tmp_path):
        path = _write(tmp_path, "- 1\n- 2\n")

        with pytest.raises(ConfigurationError, match="must be a mapping"):
            load_batching_options(path)

    def test_strict_env_reports_missing_variable(self, tmp_path, monkeypatch):
        monkeypatch.delenv("UNSET_BATCH_SIZE", raising=False)
        path = _write(tmp_path, "transaction_size: ${UNSET_BATCH_SIZE}\n")

        with pytest.raises(ConfigurationError, match="UNSET_BATCH_SIZE"):
            load_batching_options(path, strict_env=True)

    @pytest.mark.parametrize(
        "text, match",
        [
            ("transaction_size: 0\n", "positive"),
            ("transaction_size: ten\n", "integer"),
            ("retry: true\n", "transaction_size is required"),
            ("transaction_size: 5\nretry: maybe\n", "true or false"),
            ("transaction_size: 5\nworkers: 2\n", "Unknown batching keys"),
            ("transaction_size: 5\nretry_config: 3\n", "retry_config must be a mapping"),
            ("transaction_size: 5\nmax_concurrency: 0\n", "max_concurrency"),
        ],
    )
    def test_invalid_values(self, tmp_path, text, match):
        path = _write(tmp_path, text)

        with pytest.raises(ConfigurationError, match=match):
            load_batching_options(path)


class TestParseBatchingOptions:
    def test_string_numbers_are_converted(self):
        options = parse_batching_options(
            {
                "transaction_size": "20",
                "retry_config": {"max_attempts": "3", "backoff_seconds": "1.5", "jitter": "off"},
            }
        )

        assert options.transaction_size == 20
        assert options.retry_config.max_attempts == 3
        assert options.retry_config.backoff_seconds == 1.5
        assert options.retry_config.jitter is False


class TestRetryFlag:
    @pytest.mark.parametrize("value", ["false", "true", 1, None])
    def test_non_bool_retry_rejected(self, value):
        with pytest.raises(ConfigurationError, match="retry must be true or false"):
            BatchingOptions.from_dict({"transactionSize": 10, "retry": value})

    def test_string_retry_rejected_before_executor(self):
        executor = Mock()
        reducer = ReducerOptions(reducer=lambda value, acc: value + acc, accumulator=0)

        with pytest.raises(ConfigurationError) as exc_info:
            asyncio.run(batch_job(executor, [1, 2], reducer, {"transactionSize": 1, "retry": "false"}))

        assert exc_info.value.field == "retry"
        executor.assert_not_called()
