"""Process-wide settings of the matrix engine.

Settings live in a frozen dataclass. They can be read from a YAML file,
either explicitly with `load_config` or implicitly by pointing the
DUALMATRIX_CONFIG environment variable at the file before the first call to
`get_config`. A file only needs to list the keys it overrides:

    rank_tolerance: 1.0e-12
    real_precision: 9
    log_level: DEBUG
"""

import dataclasses as dc
import os
from pathlib import Path
from typing import Any

import yaml

from matrix_logging import get_logger, setup_logging

logger = get_logger(__name__)

CONFIG_ENV_VAR = "DUALMATRIX_CONFIG"


@dc.dataclass(frozen=True)
class EngineConfig:
    # Relative tolerance on singular values below which a least-squares
    # operand is declared rank deficient.
    rank_tolerance: float = 1e-10
    # Width of a cell in the text rendering of a matrix.
    cell_width: int = 17
    # Significant digits used when rendering real entries.
    real_precision: int = 9
    log_level: str = "WARNING"
    # Slots reserved by Matrix.sparse when no capacity is given.
    sparse_initial_capacity: int = 0

    def __post_init__(self):
        if not self.rank_tolerance > 0:
            raise ValueError("rank_tolerance must be positive")
        if self.cell_width < 4:
            raise ValueError("cell_width must be at least 4")
        if not 1 <= self.real_precision <= self.cell_width - 7:
            raise ValueError(
                f"real_precision must be between 1 and {self.cell_width - 7}"
            )
        if self.sparse_initial_capacity < 0:
            raise ValueError("sparse_initial_capacity must be non-negative")

    @property
    def max_name_length(self) -> int:
        # Two characters for the brackets, one for the separating blank.
        return self.cell_width - 3


def config_from_mapping(mapping: dict[str, Any]) -> EngineConfig:
    known = {f.name for f in dc.fields(EngineConfig)}
    unknown = set(mapping) - known
    if unknown:
        raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
    return EngineConfig(**mapping)


def load_config(path: str | Path) -> EngineConfig:
    with open(path, "r") as f:
        mapping = yaml.safe_load(f) or {}
    if not isinstance(mapping, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    config = config_from_mapping(mapping)
    logger.info("Loaded engine configuration from %s", path)
    return config


_current_config: EngineConfig | None = None


def get_config() -> EngineConfig:
    global _current_config
    if _current_config is None:
        path = os.environ.get(CONFIG_ENV_VAR)
        _current_config = load_config(path) if path else EngineConfig()
    return _current_config


def set_config(config: EngineConfig | None = None, **overrides) -> EngineConfig:
    """Install a configuration, returning the one it replaces.

    With no `config`, the overrides are applied on top of the current one.
    """
    global _current_config
    previous = get_config()
    base = previous if config is None else config
    _current_config = dc.replace(base, **overrides) if overrides else base
    return previous


def setup_logging_from_config(log_file: str | None = None) -> None:
    "Configure the root logger at the level named by the current configuration."
    setup_logging(get_config().log_level, log_file)
