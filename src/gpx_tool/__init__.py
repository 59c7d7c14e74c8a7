"""GPX Tool - Clean up, analyze and convert GPS activity files."""

import subprocess

__version__ = "1.0.0"
__version_date__ = "2026-10-19"


def get_git_hash() -> str:
    """Short commit hash of the checkout the tool runs from, or 'unknown'."""
    try:
        proc = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.SubprocessError):
        return "unknown"
    return proc.stdout.strip() if proc.returncode == 0 else "unknown"
