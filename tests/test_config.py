from __future__ import annotations

from pathlib import Path

import pytest

from proofread.config import CONFIG_FILENAME, ProofreadConfig, load_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv("PROOFREAD_CONFIG", raising=False)
    monkeypatch.delenv("PROOFREAD_LIBRARY", raising=False)
    monkeypatch.chdir(tmp_path)


def test_defaults_without_file() -> None:
    config = load_config()
    assert config.strategy == ProofreadConfig().strategy
    assert config.debug is False
    assert config.library_dir == Path("~/.proofread").expanduser()


def test_local_file_is_picked_up(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text(
        '[proofread]\nlibrary_dir = "rules"\nstrategy = "markup"\ndebug = true\n',
        encoding="utf-8",
    )
    config = load_config()
    assert config.library_dir == tmp_path / "rules"
    assert config.strategy == "markup"
    assert config.debug is True


def test_env_overrides(tmp_path: Path, monkeypatch) -> None:
    other = tmp_path / "elsewhere.toml"
    other.write_text('strategy = "markup"\n', encoding="utf-8")
    monkeypatch.setenv("PROOFREAD_CONFIG", str(other))
    monkeypatch.setenv("PROOFREAD_LIBRARY", str(tmp_path / "lib"))
    config = load_config()
    assert config.strategy == "markup"
    assert config.library_dir == tmp_path / "lib"


def test_invalid_values_raise(tmp_path: Path) -> None:
    bad_strategy = tmp_path / "a.toml"
    bad_strategy.write_text('[proofread]\nstrategy = "regex"\n', encoding="utf-8")
    with pytest.raises(ValueError, match="strategy"):
        load_config(bad_strategy)

    broken = tmp_path / "b.toml"
    broken.write_text("[proofread\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Failed to parse"):
        load_config(broken)
