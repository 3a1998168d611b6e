"""
Scan configuration.

All thresholds of the pipeline are tunable. Defaults match the values the
scanner was calibrated with on a phone-class depth sensor at ~35 cm.

Configuration files are YAML:

    frame_count: 15
    noise_floor: 0.005
    min_object_pixels: 50
    area_method: per_pixel
    roi:
      start_x: 0.2
      end_x: 0.8
      start_y: 0.2
      end_y: 0.8
    guidance:
      too_close: 0.25
      too_far: 0.45
"""

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .area import AREA_METHODS, AREA_METHOD_PER_PIXEL
from .averaging import DEFAULT_FRAME_COUNT
from .comparison import (
    DEFAULT_MASK_RATIO,
    DEFAULT_MIN_OBJECT_HEIGHT,
    DEFAULT_MIN_OBJECT_PIXELS,
    DEFAULT_NOISE_FLOOR
)
from .errors import ConfigError, InvalidGeometryError
from .guidance import GuidanceThresholds
from .sampling import RoiBounds
from .tracking import DEFAULT_STABILITY_WINDOW

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanConfig:
    """Tunable parameters of one scan session."""

    frame_count: int = DEFAULT_FRAME_COUNT
    roi: RoiBounds = field(default_factory=RoiBounds)
    guidance: GuidanceThresholds = field(default_factory=GuidanceThresholds)
    baseline_min: float = 0.28
    baseline_max: float = 0.45
    noise_floor: float = DEFAULT_NOISE_FLOOR
    mask_ratio: float = DEFAULT_MASK_RATIO
    min_object_height: float = DEFAULT_MIN_OBJECT_HEIGHT
    min_object_pixels: int = DEFAULT_MIN_OBJECT_PIXELS
    area_method: str = AREA_METHOD_PER_PIXEL
    stability_window: int = DEFAULT_STABILITY_WINDOW

    def validate(self) -> 'ScanConfig':
        """
        Check every value is in range.

        Returns:
            self, so calls can be chained

        Raises:
            ConfigError: On the first invalid value
        """
        try:
            self.roi.validate()
        except InvalidGeometryError as e:
            raise ConfigError(str(e)) from e

        if self.frame_count < 1:
            raise ConfigError(f"frame_count must be at least 1, got {self.frame_count}")

        if not 0 < self.baseline_min < self.baseline_max:
            raise ConfigError(
                f"Baseline band [{self.baseline_min}, {self.baseline_max}] is invalid"
            )

        g = self.guidance
        if not 0 <= g.too_close < g.too_far:
            raise ConfigError(f"guidance too_close={g.too_close} must be below too_far={g.too_far}")
        if not g.ideal_min <= g.ideal_max:
            raise ConfigError(f"guidance ideal_min={g.ideal_min} exceeds ideal_max={g.ideal_max}")
        if g.perfect_tolerance < 0:
            raise ConfigError(f"guidance perfect_tolerance must be >= 0, got {g.perfect_tolerance}")

        if self.noise_floor < 0:
            raise ConfigError(f"noise_floor must be >= 0, got {self.noise_floor}")
        if not 0 < self.mask_ratio < 1:
            raise ConfigError(f"mask_ratio must be in (0, 1), got {self.mask_ratio}")
        if self.min_object_height < 0:
            raise ConfigError(f"min_object_height must be >= 0, got {self.min_object_height}")
        if self.min_object_pixels < 1:
            raise ConfigError(f"min_object_pixels must be at least 1, got {self.min_object_pixels}")
        if self.area_method not in AREA_METHODS:
            raise ConfigError(
                f"area_method must be one of {', '.join(AREA_METHODS)}, got {self.area_method!r}"
            )
        if self.stability_window < 1:
            raise ConfigError(f"stability_window must be at least 1, got {self.stability_window}")

        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScanConfig':
        """Build a validated config from a mapping, e.g. a parsed YAML document."""
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration must be a mapping, got {type(data).__name__}")

        data = dict(data)
        nested = {
            'roi': RoiBounds,
            'guidance': GuidanceThresholds,
        }
        for key, nested_cls in nested.items():
            if key in data:
                data[key] = _build_section(nested_cls, data[key], key)

        return _build_section(cls, data, 'config').validate()

    def with_overrides(self, **overrides: Any) -> 'ScanConfig':
        return replace(self, **overrides).validate()


def load_config(path: Optional[Union[str, Path]] = None) -> ScanConfig:
    """
    Load a ScanConfig from a YAML file.

    Args:
        path: Path to the YAML file; None or a missing file yields defaults

    Returns:
        Validated ScanConfig

    Raises:
        ConfigError: If the file cannot be parsed or holds invalid values

    Example:
        >>> config = load_config("scan.yaml")
        >>> config.frame_count
        10
    """
    if path is None:
        return ScanConfig().validate()

    config_path = Path(path)
    if not config_path.exists():
        logger.info(f"Configuration file {config_path} does not exist, using defaults")
        return ScanConfig().validate()

    try:
        with config_path.open('r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read configuration {config_path}: {e}") from e

    if data is None:
        data = {}

    config = ScanConfig.from_dict(data)
    logger.info(f"Loaded configuration from {config_path}")
    return config


def _build_section(section_cls, values: Any, name: str):
    if not isinstance(values, dict):
        raise ConfigError(f"Section '{name}' must be a mapping, got {type(values).__name__}")

    known = {f.name: f for f in fields(section_cls)}
    unknown = sorted(set(values) - set(known))
    if unknown:
        raise ConfigError(f"Unknown key(s) in '{name}': {', '.join(unknown)}")

    kwargs = {}
    for key, value in values.items():
        default = known[key].default
        if isinstance(default, (int, float)) and not isinstance(default, bool):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"'{name}.{key}' must be a number, got {value!r}")
            value = type(default)(value) if isinstance(default, float) else value
            if isinstance(default, int) and not isinstance(value, int):
                raise ConfigError(f"'{name}.{key}' must be an integer, got {value!r}")
        kwargs[key] = value

    return section_cls(**kwargs)
