"""YAML configuration loader for batch job options.

Lets deployments tune transaction size, retry and concurrency without code
changes. Callbacks are code and are passed in by the caller.

Example YAML (orders_batching.yaml):
    batching:
      transaction_size: ${ORDERS_BATCH_SIZE}
      retry: true
      retry_config:
        max_attempts: 5
        backoff_seconds: 0.5
      max_concurrency: 8

Usage:
    from batchjob.lib.config_loader import load_batching_options
    options = load_batching_options("./orders_batching.yaml", on_batch_error=log_error)
    total = await batch_job(executor, rows, reducer_options, options)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from batchjob.lib.env import expand_config, load_env_file
from batchjob.lib.errors import ConfigurationError
from batchjob.lib.options import BatchingOptions, ErrorCallback, SuccessCallback
from batchjob.lib.resilience import RetryConfig

logger = logging.getLogger(__name__)

__all__ = ["load_batching_options", "parse_batching_options"]

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


def _as_int(value: Any, field: str) -> Optional[int]:
    if value is None or isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ConfigurationError(f"{field} must be an integer", field=field, value=value)


def _as_float(value: Any, field: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            pass
    raise ConfigurationError(f"{field} must be a number", field=field, value=value)


def _as_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
        return value.strip().lower() in _TRUE
    raise ConfigurationError(f"{field} must be true or false", field=field, value=value)


def _parse_retry_config(data: Any) -> Optional[RetryConfig]:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ConfigurationError(
            "retry_config must be a mapping", field="retry_config", value=data
        )

    parsed: Dict[str, Any] = dict(data)
    if "max_attempts" in parsed:
        parsed["max_attempts"] = _as_int(parsed["max_attempts"], "retry_config.max_attempts")
    for key in ("backoff_seconds", "max_backoff_seconds"):
        if key in parsed:
            parsed[key] = _as_float(parsed[key], f"retry_config.{key}")
    for key in ("exponential", "jitter"):
        if key in parsed:
            parsed[key] = _as_bool(parsed[key], f"retry_config.{key}")
    return RetryConfig.from_dict(parsed)


def parse_batching_options(
    data: Dict[str, Any],
    *,
    on_batch_success: Optional[SuccessCallback] = None,
    on_batch_error: Optional[ErrorCallback] = None,
) -> BatchingOptions:
    """Build validated BatchingOptions from an already-loaded mapping.

    A top-level ``batching:`` section is unwrapped if present. String
    values (typically from env expansion) are converted to the expected
    types.
    """
    if "batching" in data and isinstance(data["batching"], dict):
        data = data["batching"]

    allowed = {"transaction_size", "retry", "retry_config", "max_concurrency"}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ConfigurationError(
            f"Unknown batching keys: {', '.join(unknown)}",
            field="batching",
            suggestion=f"Valid keys: {', '.join(sorted(allowed))}",
        )
    if "transaction_size" not in data:
        raise ConfigurationError("transaction_size is required", field="transaction_size")

    options = BatchingOptions(
        transaction_size=_as_int(data["transaction_size"], "transaction_size"),
        on_batch_success=on_batch_success,
        on_batch_error=on_batch_error,
        retry=_as_bool(data.get("retry", False), "retry"),
        retry_config=_parse_retry_config(data.get("retry_config")),
        max_concurrency=_as_int(data.get("max_concurrency"), "max_concurrency"),
    )
    return options.validate()


def load_batching_options(
    path: Union[str, Path],
    *,
    on_batch_success: Optional[SuccessCallback] = None,
    on_batch_error: Optional[ErrorCallback] = None,
    env_file: Optional[Union[str, Path]] = None,
    strict_env: bool = False,
) -> BatchingOptions:
    """Load BatchingOptions from a YAML file.

    Args:
        path: YAML file to read
        on_batch_success: Success callback to attach
        on_batch_error: Error callback to attach
        env_file: Optional .env file loaded before expansion
        strict_env: Fail on unset ``${VAR}`` references

    Raises:
        ConfigurationError: If the file is missing, not valid YAML, or
            describes invalid options.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(
            f"Batching config not found: {config_path}", field="path", value=str(config_path)
        )

    if env_file is not None:
        load_env_file(env_file)

    try:
        with config_path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"Batching config must be a mapping: {config_path}", field="path"
        )

    try:
        expanded = expand_config(raw, strict=strict_env)
    except KeyError as e:
        raise ConfigurationError(str(e.args[0]), field="path", value=str(config_path)) from e

    options = parse_batching_options(
        expanded,
        on_batch_success=on_batch_success,
        on_batch_error=on_batch_error,
    )
    logger.debug("Loaded batching options from %s: %s", config_path, options.to_dict())
    return options
