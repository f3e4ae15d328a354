"""
Cross-platform compatibility utilities for plugkernel.

Handles:
- Config directory paths (XDG on Linux/Mac, AppData on Windows)
- Platform detection for signal handling
"""

import os
import sys
from pathlib import Path

__all__ = [
    "get_config_dir",
    "is_windows",
]


def is_windows() -> bool:
    """Check if running on Windows."""
    return sys.platform == "win32"


def get_config_dir() -> Path:
    """
    Get platform-appropriate config directory.

    - Linux/Mac: ~/.config/plugkernel (XDG_CONFIG_HOME)
    - Windows: %APPDATA%/plugkernel

    Returns:
        Path to configuration directory
    """
    if is_windows():
        # Windows: Use APPDATA or fallback to user home
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    else:
        # Linux/Mac: XDG Base Directory Specification
        xdg_config = os.environ.get("XDG_CONFIG_HOME")
        if xdg_config:
            base = Path(xdg_config)
        else:
            base = Path.home() / ".config"

    return base / "plugkernel"
