import json
import os
import tempfile
from typing import Dict, List

from . import config


def _state_path() -> str:
    return os.path.expanduser(config.STATE_PATH)


def load_state() -> Dict:
    """Load state from disk or return empty dict."""
    path = _state_path()
    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return json.load(handle) or {}
    except (OSError, ValueError):
        return {}


def save_state(state: Dict) -> None:
    """Persist state to disk atomically."""
    path = _state_path()
    parent = os.path.dirname(path) or "."
    os.makedirs(parent, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".smol_state.", dir=parent, text=True)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(state, handle, ensure_ascii=True, indent=2)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)


def get_saved_config() -> Dict:
    """Return persisted provider settings (model, api key, ...)."""
    state = load_state()
    saved = state.get("config")
    return dict(saved) if isinstance(saved, dict) else {}


def set_saved_config(values: Dict) -> None:
    state = load_state()
    state["config"] = dict(values or {})
    save_state(state)


def append_prompt(text: str) -> None:
    """Append a submitted prompt to history, keeping the most recent."""
    if config.DISABLE_HISTORY or not (text or "").strip():
        return
    state = load_state()
    prompts = list(state.get("prompt_history") or [])
    prompts.append(text)
    state["prompt_history"] = prompts[-config.MAX_PROMPT_HISTORY:]
    save_state(state)


def get_recent_prompts(limit: int = 10) -> List[str]:
    if config.DISABLE_HISTORY:
        return []
    state = load_state()
    prompts = list(state.get("prompt_history") or [])
    return [str(p) for p in prompts[-max(1, int(limit)):]]


def clear_prompts() -> None:
    state = load_state()
    state["prompt_history"] = []
    save_state(state)
