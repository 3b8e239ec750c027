"""
Configuration settings for SkillPath.

This module provides the Config class with all settings.
When installed as a package, paths are relative to the package location
or can be overridden via environment variables.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Try multiple locations for .env
for env_path in [
    Path.cwd() / ".env",  # Current working directory
    Path(__file__).parent.parent / ".env",  # Package root (when running from source)
    Path.home() / ".skillpath" / ".env",  # User config directory
]:
    if env_path.exists():
        load_dotenv(env_path, override=True)
        break


def _get_base_dir():
    """Get base directory, preferring environment variable or user config."""
    if os.getenv("SKILLPATH_BASE_DIR"):
        return Path(os.getenv("SKILLPATH_BASE_DIR"))
    # Default: ~/.skillpath for installed package, or package parent for dev
    user_dir = Path.home() / ".skillpath"
    if user_dir.exists():
        return user_dir
    # Fallback to package parent (for running from source)
    return Path(__file__).parent.parent


class Config:
    """Main configuration class for SkillPath."""

    # Paths - can be overridden via SKILLPATH_BASE_DIR env var
    BASE_DIR = _get_base_dir()
    DATA_DIR = BASE_DIR / "data"
    DB_PATH = Path(os.getenv("SKILLPATH_DB_PATH", str(DATA_DIR / "skillpath.db")))

    # Authored learning paths and achievements (YAML)
    CATALOG_PATH = Path(
        os.getenv("SKILLPATH_CATALOG", str(Path(__file__).parent / "learning_paths.yaml"))
    )

    # Persistence Settings
    PERSISTENCE_MAX_RETRIES = int(os.getenv("SKILLPATH_PERSISTENCE_MAX_RETRIES", "3"))
    PERSISTENCE_BASE_DELAY = float(
        os.getenv("SKILLPATH_PERSISTENCE_BASE_DELAY", "0.1")
    )  # seconds, doubled per attempt

    # Read Model Settings
    RECOMMENDATION_LIMIT = int(os.getenv("SKILLPATH_RECOMMENDATION_LIMIT", "5"))
    TIMELINE_LIMIT = int(os.getenv("SKILLPATH_TIMELINE_LIMIT", "20"))

    # Logging
    LOG_LEVEL = os.getenv("SKILLPATH_LOG_LEVEL", "WARNING").upper()

    @classmethod
    def ensure_dirs(cls):
        """Create all necessary directories."""
        cls.DATA_DIR.mkdir(exist_ok=True, parents=True)
        cls.DB_PATH.parent.mkdir(exist_ok=True, parents=True)
