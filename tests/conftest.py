import pytest

from smol_shell import config


@pytest.fixture(autouse=True)
def _isolated_state(tmp_path, monkeypatch):
    """Keep state, backups and logs out of the real home/cwd."""
    monkeypatch.setattr(config, "STATE_PATH", str(tmp_path / "state.json"))
    monkeypatch.setattr(config, "STATE_DIR", str(tmp_path / "smol-state"))
    monkeypatch.setattr(config, "DEBUG", False)
    monkeypatch.setattr(config, "USE_CHAT_TOOLS", False)
