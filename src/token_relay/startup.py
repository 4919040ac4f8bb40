"""Centralized initialization for all token_relay entry points.

Loads the ``.env`` file from the project root (or the current directory)
once, before any configuration is read from the environment. Both the API
server and the CLI call ensure_initialized().
"""

import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_initialized: bool = False


def _find_project_root(start_path: Optional[Path] = None) -> Path:
    """Find project root by looking for .env or pyproject.toml.

    Args:
        start_path: Starting path for search. Defaults to the working directory.

    Returns:
        Project root directory.
    """
    if start_path is None:
        start_path = Path.cwd()

    for parent in [start_path] + list(start_path.parents):
        if (parent / ".env").exists():
            return parent
        if (parent / "pyproject.toml").exists():
            return parent
    return start_path


def _load_env(project_root: Path) -> bool:
    """Load .env file from project root without overriding set variables.

    Returns:
        True if .env was loaded, False otherwise.
    """
    env_path = project_root / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=False)
        logger.info(f"Loaded .env from {env_path}")
        return True
    logger.debug(f"No .env found at {env_path}")
    return False


def ensure_initialized(start_path: Optional[Path] = None) -> bool:
    """Load environment once (idempotent).

    Returns:
        True if a .env file was loaded by this call.
    """
    global _initialized

    if _initialized:
        return False

    loaded = _load_env(_find_project_root(start_path))
    _initialized = True
    return loaded


def load_env_file(env_path: Path) -> None:
    """Load an explicit env file instead of searching for ``.env``.

    Variables already set in the environment win. Marks the process
    initialized so a later ensure_initialized() does not load another file.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    global _initialized

    env_path = Path(env_path)
    if not env_path.is_file():
        raise FileNotFoundError(f"Env file not found: {env_path}")
    load_dotenv(env_path, override=False)
    logger.info(f"Loaded settings from {env_path}")
    _initialized = True
