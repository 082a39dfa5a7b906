"""Configuration management for flexistream.

This module handles loading user configuration from ~/.config/flexistream/init.py
and provides a sandboxed execution environment for user settings.
"""

from __future__ import annotations

import os
import traceback
from pathlib import Path
from typing import Any, Optional

FIRST_CONTENT = "first-content"
RECEIVED_CONTENT = "received-content"
CONTENT_POLICIES = (FIRST_CONTENT, RECEIVED_CONTENT)

DEFAULT_FALLBACK_MESSAGE = "Sorry, I did not receive a valid response."
DEFAULT_GREETING = "Hello! How can I help you today?"


class StreamConfig:
    """Configuration container for flexistream settings.

    Values can be set by the user's init.py file. All settings have
    sensible defaults.
    """

    def __init__(self):
        # Pipeline stages
        self.router_unwrap: bool = True  # strip {"route":...,"response":...}
        self.bbcode: bool = True  # convert BBCode to Markdown
        self.hold_partial_json: bool = True

        # Stream handling
        self.skip_wrapper_tokens: bool = True  # drop "[bbcode]", "[", "]" items
        self.fallback_message: str = DEFAULT_FALLBACK_MESSAGE
        self.content_policy: str = FIRST_CONTENT  # or "received-content"

        # Conversation settings
        self.greeting: Optional[str] = DEFAULT_GREETING
        self.bootstrap_pending: bool = True

        # Replay settings
        self.chunk_size: int = 64

        # Custom settings (user can add any additional settings)
        self._custom: dict[str, Any] = {}

    def set(self, key: str, value: Any) -> None:
        """Set a custom configuration value."""
        self._custom[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Get a custom configuration value."""
        return self._custom.get(key, default)


def get_config_path() -> Path:
    """Get the path to the user's config directory."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "flexistream"
    return Path.home() / ".config" / "flexistream"


def get_init_script_path() -> Path:
    """Get the path to the user's init.py script."""
    return get_config_path() / "init.py"


def load_config() -> tuple[StreamConfig, Optional[str]]:
    """Load configuration from ~/.config/flexistream/init.py.

    The init.py file is executed in a sandboxed environment where it can set
    configuration values on a 'config' object.

    Returns:
        A tuple of (config, error_message). If loading fails, error_message
        will contain details about the failure.
    """
    config = StreamConfig()
    init_path = get_init_script_path()

    if not init_path.exists():
        return config, None

    sandbox = {
        "__builtins__": {
            "True": True,
            "False": False,
            "None": None,
            "str": str,
            "int": int,
            "float": float,
            "bool": bool,
            "list": list,
            "dict": dict,
            "tuple": tuple,
            "len": len,
            "range": range,
            "print": print,
            "__import__": None,
            "open": None,
            "exec": None,
            "eval": None,
            "compile": None,
        },
        "config": config,
    }

    try:
        with open(init_path, "r") as f:
            code = f.read()
        exec(code, sandbox)
    except Exception:
        return config, f"Error loading config from {init_path}:\n{traceback.format_exc()}"

    if config.content_policy not in CONTENT_POLICIES:
        error = (
            f"Error in {init_path}: content_policy must be one of "
            f"{', '.join(CONTENT_POLICIES)}, got {config.content_policy!r}"
        )
        config.content_policy = FIRST_CONTENT
        return config, error

    return config, None
