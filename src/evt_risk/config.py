"""
config.py
---------
Centralised configuration for the EVT risk engine.
Defaults are read from environment variables so that batch studies can be
re-tuned without code changes. Every operation takes the relevant value as
an explicit keyword; these objects only supply the defaults.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class FitConfig:
    """GPD maximum-likelihood fitting parameters."""
    method:   str   = os.getenv("EVT_OPTIMIZER", "Nelder-Mead")
    max_iter: int   = int(os.getenv("EVT_MAX_ITER", "2000"))
    xatol:    float = 1e-8
    fatol:    float = 1e-8
    start:    str   = os.getenv("EVT_FIT_START", "moments")   # moments | exponential


@dataclass
class SimulationConfig:
    """Block-maxima simulation and kernel density settings."""
    n_blocks:   int   = int(os.getenv("EVT_N_BLOCKS", "500"))    # m
    seed:       int   = int(os.getenv("EVT_SEED", "271"))
    kde_adjust: float = float(os.getenv("EVT_KDE_ADJUST", "1.5"))
    kde_points: int   = 512
    kde_cut:    float = 3.0     # grid extends cut * bandwidth past the sample range


@dataclass
class LogConfig:
    """Logging level and optional log directory."""
    level:   str           = os.getenv("EVT_LOG_LEVEL", "INFO")
    log_dir: Optional[str] = os.getenv("EVT_LOG_DIR") or None


@dataclass
class EVTConfig:
    """Master configuration aggregating all sub-configs."""
    fit:        FitConfig        = field(default_factory=FitConfig)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    log:        LogConfig        = field(default_factory=LogConfig)


DEFAULT_CONFIG = EVTConfig()
