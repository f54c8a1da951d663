"""Decoder and animation settings."""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union


def _parse_level(value: Union[int, str]) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {value}")
    return level


CONFIG_FIELDS = [
    ("log_dir", Path, None),
    ("log_level", _parse_level, logging.INFO),
    ("keyframe_epsilon", float, 0.001),     # keyframe position match tolerance
    ("near_detail_size", float, 1000.0),    # projected size used at zero distance
    ("lzh_max_overrun", int, 2),            # zero bytes tolerated past LZH input
]


@dataclass(frozen=True)
class DecoderConfig:
    log_dir: Optional[Path] = None
    log_level: int = logging.INFO
    keyframe_epsilon: float = 0.001
    near_detail_size: float = 1000.0
    lzh_max_overrun: int = 2


def load_config(config_path: Path) -> DecoderConfig:
    """Read a JSON settings file. Missing keys take their defaults."""
    raw = json.loads(Path(config_path).read_text(encoding="utf-8"))

    values = {}
    for key, cast, default in CONFIG_FIELDS:
        value = raw[key] if key in raw else default
        if value is not None and cast is not None:
            value = cast(value)
        values[key] = value

    return DecoderConfig(**values)
