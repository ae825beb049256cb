"""Environment-file loading and resolved runtime settings."""

from __future__ import annotations

from .envfile import EnvFile, MergePolicy, load_env_file, merge_into_environ, parse_env_text
from .settings import Settings

__all__ = ["EnvFile", "MergePolicy", "Settings", "load_env_file", "merge_into_environ", "parse_env_text"]
