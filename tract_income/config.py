"""
Configuration for the tract income pipeline.

Loads environment variables (and a local .env file) and provides the
selection policy thresholds used by the CLI and ModelSelector.
"""

import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


@dataclass
class Config:
    """Configuration settings for the pipeline."""

    # Input
    data_path: Optional[str] = None
    population_col: str = "population"
    response_col: str = "median_income"
    area_col: str = "area"
    strict_proportions: bool = True

    # Selection policy (tau, rho)
    significance_threshold: float = 0.05
    correlation_threshold: float = 0.5
    nonlinearity_alpha: float = 0.01
    log_offset: float = 0.0
    allow_transforms: bool = True

    # Logging
    log_level: str = "INFO"
    verbose: bool = True

    @classmethod
    def from_env(cls) -> "Config":
        """
        Create a Config instance from environment variables.

        Optional environment variables:
        - TRACT_DATA_PATH: default dataset for the CLI
        - SIGNIFICANCE_THRESHOLD, CORRELATION_THRESHOLD, NONLINEARITY_ALPHA
        - LOG_OFFSET, ALLOW_TRANSFORMS, STRICT_PROPORTIONS
        - LOG_LEVEL, VERBOSE

        Returns:
            Config: Configuration instance
        """
        return cls(
            data_path=os.getenv("TRACT_DATA_PATH") or None,
            population_col=os.getenv("POPULATION_COL", "population"),
            response_col=os.getenv("RESPONSE_COL", "median_income"),
            area_col=os.getenv("AREA_COL", "area"),
            strict_proportions=_env_bool("STRICT_PROPORTIONS", "true"),
            significance_threshold=float(os.getenv("SIGNIFICANCE_THRESHOLD", "0.05")),
            correlation_threshold=float(os.getenv("CORRELATION_THRESHOLD", "0.5")),
            nonlinearity_alpha=float(os.getenv("NONLINEARITY_ALPHA", "0.01")),
            log_offset=float(os.getenv("LOG_OFFSET", "0.0")),
            allow_transforms=_env_bool("ALLOW_TRANSFORMS", "true"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            verbose=_env_bool("VERBOSE", "true"),
        )

    def __post_init__(self):
        if not 0 < self.significance_threshold < 1:
            raise ValueError(
                f"significance_threshold must be in (0, 1), got {self.significance_threshold}"
            )
        if not 0 <= self.correlation_threshold <= 1:
            raise ValueError(
                f"correlation_threshold must be in [0, 1], got {self.correlation_threshold}"
            )


# Global config instance (lazy loaded)
_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance.

    Returns:
        Config: Global configuration object
    """
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config
