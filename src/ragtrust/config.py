"""ragtrust configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (RAGTRUST_DB, RAGTRUST_LOG_LEVEL)
  3. Per-project ragtrust.yaml
  4. Global ~/.ragtrust/config.yaml
  5. Hardcoded defaults

The weighting formula and every learning/experiment/recommendation threshold
are heuristics, so they live here as tunable defaults rather than constants.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".ragtrust"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "ragtrust.yaml"

_LOG_LEVELS: frozenset[str] = frozenset(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])

# Known top-level sections; unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["retrieval", "learning", "experiment", "recommendations", "storage", "logging"]
)

SECONDS_PER_DAY = 24 * 60 * 60


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class RetrievalCfg:
    """Ranking configuration (ragtrust.yaml: retrieval:).

    The priority multiplier is ``priority_base + priority * priority_step``,
    i.e. 0.7x at priority 1 up to 1.5x at priority 5 with the defaults.
    """

    top_k: int = 5
    default_priority: int = 3
    priority_base: float = 0.5
    priority_step: float = 0.2


@dataclass
class ScoreThresholds:
    """Minimum learning score for each auto-adjusted priority level."""

    very_high: float = 0.8   # -> 5
    high: float = 0.65       # -> 4
    normal: float = 0.35     # -> 3
    low: float = 0.2         # -> 2, anything below -> 1


@dataclass
class LearningCfg:
    """Feedback learning configuration (ragtrust.yaml: learning:).

    Attributes:
        half_life_days: Age at which a judgment weighs half as much.
        z: Normal quantile of the Wilson interval (1.96 = 95%).
        auto_adjust_threshold: Ratings needed before priority auto-adjusts.
        auto_adjust_max_width: Interval width below which auto-adjust fires.
        thresholds: Score → priority mapping used by auto-adjust.
    """

    half_life_days: float = 30.0
    z: float = 1.96
    auto_adjust_threshold: int = 5
    auto_adjust_max_width: float = 0.3
    thresholds: ScoreThresholds = field(default_factory=ScoreThresholds)

    @property
    def half_life_seconds(self) -> float:
        return self.half_life_days * SECONDS_PER_DAY


@dataclass
class ExperimentCfg:
    """A/B decision rules (ragtrust.yaml: experiment:)."""

    min_questions: int = 10
    min_rate_difference: float = 0.05
    min_total_for_p_value: int = 20


@dataclass
class RecommendationCfg:
    """Recommendation rules (ragtrust.yaml: recommendations:)."""

    min_ratings: int = 3
    high_confidence_width: float = 0.2
    medium_confidence_width: float = 0.4
    stale_days: float = 30.0
    stale_max_uses: int = 5


@dataclass
class StorageCfg:
    """Key-value store location (ragtrust.yaml: storage:).

    Attributes:
        path: SQLite database file holding the registry and experiment state.
        timeout: Seconds a write may wait on a locked database before failing.
    """

    path: str = ".ragtrust.db"
    timeout: float = 5.0


@dataclass
class LoggingCfg:
    level: str = "WARNING"


@dataclass
class RagtrustConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    learning: LearningCfg = field(default_factory=LearningCfg)
    experiment: ExperimentCfg = field(default_factory=ExperimentCfg)
    recommendations: RecommendationCfg = field(default_factory=RecommendationCfg)
    storage: StorageCfg = field(default_factory=StorageCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def validate_config(cfg: RagtrustConfig) -> RagtrustConfig:
    """Raise ConfigError if any value is out of range; return *cfg* otherwise."""
    r = cfg.retrieval
    if r.top_k < 1:
        raise ConfigError(f"retrieval.top_k must be >= 1, got {r.top_k}")
    if not 1 <= r.default_priority <= 5:
        raise ConfigError(
            f"retrieval.default_priority must be in 1..5, got {r.default_priority}"
        )
    if r.priority_step < 0:
        raise ConfigError(f"retrieval.priority_step must be >= 0, got {r.priority_step}")

    lc = cfg.learning
    if lc.half_life_days <= 0:
        raise ConfigError(f"learning.half_life_days must be > 0, got {lc.half_life_days}")
    if lc.z <= 0:
        raise ConfigError(f"learning.z must be > 0, got {lc.z}")
    if lc.auto_adjust_threshold < 1:
        raise ConfigError(
            f"learning.auto_adjust_threshold must be >= 1, got {lc.auto_adjust_threshold}"
        )
    t = lc.thresholds
    if not 1.0 > t.very_high > t.high > t.normal > t.low > 0.0:
        raise ConfigError(
            "learning.thresholds must be strictly descending within (0, 1): "
            f"very_high={t.very_high}, high={t.high}, normal={t.normal}, low={t.low}"
        )

    rc = cfg.recommendations
    if not 0.0 < rc.high_confidence_width <= rc.medium_confidence_width:
        raise ConfigError(
            "recommendations.high_confidence_width must be > 0 and "
            "<= recommendations.medium_confidence_width"
        )

    if cfg.storage.timeout <= 0:
        raise ConfigError(f"storage.timeout must be > 0, got {cfg.storage.timeout}")

    if cfg.logging.level.upper() not in _LOG_LEVELS:
        raise ConfigError(
            f"logging.level must be one of {', '.join(sorted(_LOG_LEVELS))}, "
            f"got '{cfg.logging.level}'"
        )
    return cfg


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _parse_thresholds(raw: dict[str, Any], defaults: ScoreThresholds) -> ScoreThresholds:
    return ScoreThresholds(
        very_high=float(raw.get("very_high", defaults.very_high)),
        high=float(raw.get("high", defaults.high)),
        normal=float(raw.get("normal", defaults.normal)),
        low=float(raw.get("low", defaults.low)),
    )


def _cfg_from_dict(data: dict[str, Any]) -> RagtrustConfig:
    """Build a *RagtrustConfig* from a merged raw YAML dict."""
    cfg = RagtrustConfig()

    try:
        if "retrieval" in data:
            r = data["retrieval"] or {}
            cfg.retrieval = RetrievalCfg(
                top_k=int(r.get("top_k", cfg.retrieval.top_k)),
                default_priority=int(
                    r.get("default_priority", cfg.retrieval.default_priority)
                ),
                priority_base=float(r.get("priority_base", cfg.retrieval.priority_base)),
                priority_step=float(r.get("priority_step", cfg.retrieval.priority_step)),
            )

        if "learning" in data:
            lc = data["learning"] or {}
            cfg.learning = LearningCfg(
                half_life_days=float(lc.get("half_life_days", cfg.learning.half_life_days)),
                z=float(lc.get("z", cfg.learning.z)),
                auto_adjust_threshold=int(
                    lc.get("auto_adjust_threshold", cfg.learning.auto_adjust_threshold)
                ),
                auto_adjust_max_width=float(
                    lc.get("auto_adjust_max_width", cfg.learning.auto_adjust_max_width)
                ),
                thresholds=_parse_thresholds(
                    lc.get("thresholds") or {}, cfg.learning.thresholds
                ),
            )

        if "experiment" in data:
            e = data["experiment"] or {}
            cfg.experiment = ExperimentCfg(
                min_questions=int(e.get("min_questions", cfg.experiment.min_questions)),
                min_rate_difference=float(
                    e.get("min_rate_difference", cfg.experiment.min_rate_difference)
                ),
                min_total_for_p_value=int(
                    e.get("min_total_for_p_value", cfg.experiment.min_total_for_p_value)
                ),
            )

        if "recommendations" in data:
            rc = data["recommendations"] or {}
            d = cfg.recommendations
            cfg.recommendations = RecommendationCfg(
                min_ratings=int(rc.get("min_ratings", d.min_ratings)),
                high_confidence_width=float(
                    rc.get("high_confidence_width", d.high_confidence_width)
                ),
                medium_confidence_width=float(
                    rc.get("medium_confidence_width", d.medium_confidence_width)
                ),
                stale_days=float(rc.get("stale_days", d.stale_days)),
                stale_max_uses=int(rc.get("stale_max_uses", d.stale_max_uses)),
            )

        if "storage" in data:
            s = data["storage"] or {}
            cfg.storage = StorageCfg(
                path=str(s.get("path", cfg.storage.path)),
                timeout=float(s.get("timeout", cfg.storage.timeout)),
            )

        if "logging" in data:
            lg = data["logging"] or {}
            cfg.logging = LoggingCfg(level=str(lg.get("level", cfg.logging.level)))
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    return cfg


def _apply_env_overrides(cfg: RagtrustConfig) -> RagtrustConfig:
    """Apply RAGTRUST_* environment variable overrides (layer 2)."""
    if path := os.environ.get("RAGTRUST_DB"):
        cfg.storage.path = path
    if level := os.environ.get("RAGTRUST_LOG_LEVEL"):
        cfg.logging.level = level
    return cfg


def _read_yaml(path: Path) -> dict[str, Any]:
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping at top level.")
    return raw


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> RagtrustConfig:
    """Load and return a merged *RagtrustConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *ragtrust.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged and validated *RagtrustConfig*.

    Raises:
        ConfigError: If a file is not a mapping or a value is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)
    cfg = _apply_env_overrides(cfg)
    return validate_config(cfg)
