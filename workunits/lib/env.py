"""Environment variable handling for discovery configuration.

Expands ``${VAR}``, ``${VAR:-default}`` and ``$VAR`` references in the
values of a parsed configuration, and loads ``.env`` files through
python-dotenv.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Optional, Union

from dotenv import load_dotenv

__all__ = ["expand_env_vars", "expand_config", "load_env_file"]

ENV_VAR_PATTERN = re.compile(
    r"\$\{(?P<braced>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<default>[^}]*))?\}"
    r"|\$(?P<bare>[A-Za-z_][A-Za-z0-9_]*)"
)


def load_env_file(
    path: Optional[Union[str, Path]] = None,
    *,
    override: bool = False,
) -> bool:
    """Load environment variables from a .env file.

    Args:
        path: Path to .env file. If None, python-dotenv searches the
              current directory and its parents.
        override: If True, override existing environment variables.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    return load_dotenv(dotenv_path=path, override=override)


def expand_env_vars(value: str, *, strict: bool = False) -> str:
    """Expand environment variables in a string.

    Example:
        >>> os.environ["WAREHOUSE"] = "/data/warehouse"
        >>> expand_env_vars("${WAREHOUSE}/sales")
        '/data/warehouse/sales'
        >>> expand_env_vars("${MISSING:-fallback}")
        'fallback'

    Raises:
        KeyError: In strict mode, for a variable that is unset and has no default
    """

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group("braced") or match.group("bare")
        env_value = os.environ.get(var_name)
        if env_value is not None:
            return env_value
        default = match.group("default")
        if default is not None:
            return default
        if strict:
            raise KeyError(f"Environment variable not set: {var_name}")
        return str(match.group(0))

    return ENV_VAR_PATTERN.sub(replacer, value)


def expand_config(value: Any, *, strict: bool = False) -> Any:
    """Recursively expand environment variables in a parsed config tree."""
    if isinstance(value, str):
        return expand_env_vars(value, strict=strict)
    if isinstance(value, dict):
        return {key: expand_config(item, strict=strict) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_config(item, strict=strict) for item in value]
    return value
