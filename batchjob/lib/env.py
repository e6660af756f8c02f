"""Environment variable helpers for batch job configuration.

Expands ``${VAR_NAME}`` and ``$VAR_NAME`` references in option values and
loads ``.env`` files with python-dotenv.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Optional, Union

from dotenv import load_dotenv

__all__ = ["expand_env_vars", "expand_config", "load_env_file", "env_int"]

ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def load_env_file(
    path: Optional[Union[str, Path]] = None,
    *,
    override: bool = False,
) -> bool:
    """Load variables from a .env file into ``os.environ``.

    Returns True if a file was found and loaded. With ``path=None`` the
    current and parent directories are searched.
    """
    return load_dotenv(dotenv_path=path, override=override)


def expand_env_vars(value: str, *, strict: bool = False) -> str:
    """Expand environment variable references in ``value``.

    Unset variables are left as written unless ``strict`` is set, in which
    case KeyError is raised.

    Example:
        >>> os.environ["BATCH_SIZE"] = "500"
        >>> expand_env_vars("${BATCH_SIZE}")
        '500'
    """

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1) or match.group(2)
        env_value = os.environ.get(var_name)
        if env_value is None:
            if strict:
                raise KeyError(f"Environment variable not set: {var_name}")
            return str(match.group(0))
        return env_value

    return ENV_VAR_PATTERN.sub(replacer, value)


def expand_config(value: Any, *, strict: bool = False) -> Any:
    """Recursively expand env references in strings inside dicts and lists."""
    if isinstance(value, str):
        return expand_env_vars(value, strict=strict)
    if isinstance(value, dict):
        return {key: expand_config(item, strict=strict) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_config(item, strict=strict) for item in value]
    return value


def env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    """Read an integer environment variable, or ``default`` when unset/blank.

    Raises:
        ValueError: If the variable is set but not an integer.
    """
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
