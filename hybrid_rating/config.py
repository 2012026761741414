"""`config.yaml` loading into frozen dataclasses."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .cf.neighborhood import NeighborhoodConfig
from .evaluation import EvaluationConfig
from .mf.train import LatentFactorConfig


@dataclass(frozen=True)
class DataConfig:
    data_dir: str = "data/processed"
    train_file: str = "train.csv"
    test_file: str = "test.csv"
    n_users: int | None = None
    n_items: int | None = None


@dataclass(frozen=True)
class EngineConfig:
    data: DataConfig = field(default_factory=DataConfig)
    neighborhood: NeighborhoodConfig = field(default_factory=NeighborhoodConfig)
    latent_factors: LatentFactorConfig = field(default_factory=LatentFactorConfig)
    evaluation: EvaluationConfig = field(default_factory=EvaluationConfig)
    seed: int = 42
    log_level: str = "INFO"


def _section(cls: type, raw: dict[str, Any], name: str) -> Any:
    section = raw.get(name, {})
    if section is None:
        section = {}
    if not isinstance(section, dict):
        raise ValueError(f"config section {name!r} must be a mapping, got {type(section)}")

    known = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise ValueError(f"unknown keys in config section {name!r}: {unknown}")
    return cls(**section)


def config_from_dict(raw: dict[str, Any]) -> EngineConfig:
    if not isinstance(raw, dict):
        raise ValueError(f"Expected config to be a mapping, got: {type(raw)}")

    sections = {"data", "neighborhood", "latent_factors", "evaluation"}
    unknown = sorted(set(raw) - sections - {"seed", "log_level"})
    if unknown:
        raise ValueError(f"unknown top-level config keys: {unknown}")

    return EngineConfig(
        data=_section(DataConfig, raw, "data"),
        neighborhood=_section(NeighborhoodConfig, raw, "neighborhood"),
        latent_factors=_section(LatentFactorConfig, raw, "latent_factors"),
        evaluation=_section(EvaluationConfig, raw, "evaluation"),
        seed=int(raw.get("seed", 42)),
        log_level=str(raw.get("log_level", "INFO")),
    )


def load_config(path: Path | None = None) -> EngineConfig:
    """Read `config.yaml`; a missing path means all defaults."""
    if path is None:
        return EngineConfig()
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    raw = yaml.safe_load(path.read_text())
    if raw is None:
        return EngineConfig()
    return config_from_dict(raw)
