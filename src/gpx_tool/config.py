import json
from pathlib import Path

CONFIG_DIR = Path.home() / ".config" / "gpx-tool"
CONFIG_PATH = CONFIG_DIR / "gpx-tool.json"
LOCAL_CONFIG_PATH = Path("gpx-tool.json")


def load_config(paths: list[Path] | None = None) -> dict:
    """Load default option values from config files.

    Merges config from global and local files:
    1. ~/.config/gpx-tool/gpx-tool.json (global, loaded first)
    2. ./gpx-tool.json (local, overrides global)

    Keys are the command line option names with underscores, e.g.
    ``{"output_format": "csv", "max_grade": 15}``.

    Returns:
        Dict with merged config values, empty dict if no files exist.
    """
    if paths is None:
        paths = [CONFIG_PATH, LOCAL_CONFIG_PATH]
    config = {}
    for config_path in paths:
        if config_path.exists():
            try:
                with config_path.open() as f:
                    config.update(json.load(f))
            except (json.JSONDecodeError, OSError):
                continue
    return config
