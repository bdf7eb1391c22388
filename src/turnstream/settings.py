"""Persisted presentation preferences for turnstream.

Preferences live in a JSON object at $XDG_CONFIG_HOME/turnstream/settings.json:

    {"theme": "nord", "hide_thinking_block": true, "width": 100}

Command-line flags win over stored values. Unknown keys are preserved on
save so other tools can share the file; values of the wrong type are
ignored with a warning rather than failing the command.

Import as: import turnstream.settings
"""

import dataclasses
import json
import logging
import os
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Preferences:
    theme: Optional[str] = None
    hide_thinking_block: bool = False
    width: Optional[int] = None


# [LAW:one-source-of-truth] Each stored key and what makes its value acceptable.
_VALIDATORS: dict[str, Callable[[object], bool]] = {
    "theme": lambda v: isinstance(v, str) and bool(v.strip()),
    "hide_thinking_block": lambda v: isinstance(v, bool),
    "width": lambda v: isinstance(v, int) and not isinstance(v, bool) and v > 0,
}


def get_config_path() -> Path:
    config_home = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    return Path(config_home) / "turnstream" / "settings.json"


def _read_object(path: Path) -> dict:
    # [LAW:dataflow-not-control-flow] Missing, unreadable and non-object files all read as {}.
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("ignoring unreadable settings file %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("ignoring settings file %s: expected a JSON object", path)
        return {}
    return data


def _write_atomic(path: Path, data: dict) -> None:
    """Write via a temp file in the same directory, then rename over the target."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        os.replace(tmp_path, path)
    except Exception:
        Path(tmp_path).unlink(missing_ok=True)
        raise


def load_preferences() -> Preferences:
    """Stored preferences, with defaults for anything absent or invalid."""
    path = get_config_path()
    stored = _read_object(path)
    accepted = {}
    for key, is_valid in _VALIDATORS.items():
        if key not in stored:
            continue
        value = stored[key]
        if is_valid(value):
            accepted[key] = value
        else:
            logger.warning("ignoring setting %s=%r in %s", key, value, path)
    return Preferences(**accepted)


def save_preferences(prefs: Preferences) -> None:
    """Merge ``prefs`` into the settings file; None removes a key."""
    path = get_config_path()
    data = _read_object(path)
    for key, value in dataclasses.asdict(prefs).items():
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value
    _write_atomic(path, data)
    logger.debug("saved preferences to %s", path)
