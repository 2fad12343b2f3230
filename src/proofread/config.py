from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

from .core import STRATEGIES, STRATEGY_TREE

CONFIG_FILENAME = "proofread.toml"
CONFIG_ENV_VAR = "PROOFREAD_CONFIG"
LIBRARY_ENV_VAR = "PROOFREAD_LIBRARY"
DEFAULT_LIBRARY_DIR = Path("~/.proofread")


@dataclass
class ProofreadConfig:
    library_dir: Path = DEFAULT_LIBRARY_DIR
    strategy: str = STRATEGY_TREE
    debug: bool = False


def _resolve_config_path(path: Path | str | None) -> Path | None:
    if path is not None:
        return Path(path).expanduser()
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    local = Path.cwd() / CONFIG_FILENAME
    return local if local.exists() else None


def load_config(path: Path | str | None = None) -> ProofreadConfig:
    """Read ``proofread.toml`` into a :class:`ProofreadConfig`.

    Lookup order: explicit ``path``, ``$PROOFREAD_CONFIG``, then
    ``./proofread.toml``. A missing file yields defaults. ``$PROOFREAD_LIBRARY``
    overrides ``library_dir`` in every case.
    """
    config = ProofreadConfig()
    config_path = _resolve_config_path(path)
    if config_path is not None and config_path.exists():
        try:
            with config_path.open("rb") as fh:
                data = tomllib.load(fh)
        except tomllib.TOMLDecodeError as exc:
            raise ValueError(f"Failed to parse config file: {config_path}") from exc
        section = data.get("proofread", data)
        if not isinstance(section, dict):
            raise ValueError(f"{config_path.name}: [proofread] must be a table.")
        library_dir = section.get("library_dir")
        if isinstance(library_dir, str) and library_dir.strip():
            candidate = Path(library_dir).expanduser()
            if not candidate.is_absolute():
                candidate = config_path.parent / candidate
            config.library_dir = candidate
        strategy = section.get("strategy")
        if strategy is not None:
            if strategy not in STRATEGIES:
                raise ValueError(
                    f"{config_path.name}: strategy must be one of {', '.join(STRATEGIES)}."
                )
            config.strategy = strategy
        debug = section.get("debug")
        if isinstance(debug, bool):
            config.debug = debug
    env_library = os.environ.get(LIBRARY_ENV_VAR)
    if env_library:
        config.library_dir = Path(env_library)
    config.library_dir = config.library_dir.expanduser()
    return config


__all__ = ["CONFIG_FILENAME", "ProofreadConfig", "load_config"]
