"""
Configuration module for decompcg.

This module provides the configuration of the column generation engine:
dual stabilization, pricing budgets, column housekeeping, loop limits,
numerical tolerances and logging preferences.

Configuration can be set via:
1. Environment variable DECOMPCG_CONFIG (path to a config file)
2. Config file (./decompcg.toml or ~/.decompcg/config.toml)
3. Programmatic API, including the option names DualStab, DualStabAlpha,
   PricingTimeBudget and ColumnCompressionThreshold

There is no global configuration instance: a DecompConfig travels inside
the SolverContext handed to every entry point.

Example:
    >>> from decompcg.config import DecompConfig
    >>> config = DecompConfig.from_options({"DualStab": True, "DualStabAlpha": 0.3})
    >>> config.dual_stab_alpha
    0.3
"""

import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from decompcg.errors import ConfigurationError

# Recognized option names -> dataclass field names
OPTION_ALIASES: dict[str, str] = {
    "DualStab": "dual_stab",
    "DualStabAlpha": "dual_stab_alpha",
    "PricingTimeBudget": "pricing_time_budget",
    "ColumnCompressionThreshold": "column_compression_threshold",
}


def _default_tolerances() -> dict[str, float]:
    return {
        "reduced_cost": 1e-6,
        "integrality": 1e-5,
        "feasibility": 1e-6,
        "bound": 1e-6,
        "cut_violation": 1e-6,
    }


@dataclass
class DecompConfig:
    """
    Configuration for the decomposition engine.

    Attributes:
        dual_stab: Enable dual smoothing (DualStab)
        dual_stab_alpha: Smoothing weight of the stabilization center,
            must lie in [0, 1) (DualStabAlpha)
        pricing_time_budget: Seconds allowed for one pricing round, None = no
            budget (PricingTimeBudget)
        column_compression_threshold: Consecutive inactive master solves
            before a column is evicted, 0 = never (ColumnCompressionThreshold)
        num_threads: Worker threads used to price blocks in one round
        max_iterations: Maximum pricing rounds per node (0 = unlimited)
        max_time: Maximum wall time per node in seconds (0 = unlimited)
        max_cut_rounds: Maximum cutting rounds per node (0 = no cutting)
        use_artificials: Add big-M artificial columns to coupling and
            convexity rows so the first master solve is feasible
        artificial_cost: Cost of an artificial column
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        verbose: Attach a console handler when logging is initialised
        tolerances: Numerical tolerances
    """

    # Dual stabilization
    dual_stab: bool = False
    dual_stab_alpha: float = 0.5

    # Pricing
    pricing_time_budget: Optional[float] = None
    num_threads: int = 1

    # Column housekeeping
    column_compression_threshold: int = 0

    # Loop limits
    max_iterations: int = 1000
    max_time: float = 0.0
    max_cut_rounds: int = 10

    # Initial master
    use_artificials: bool = True
    artificial_cost: float = 1e6

    # Logging
    log_level: str = "INFO"
    verbose: bool = False

    # Numerical tolerances
    tolerances: dict[str, float] = field(default_factory=_default_tolerances)

    def __post_init__(self):
        """Fill in missing tolerances and validate."""
        merged = _default_tolerances()
        merged.update(self.tolerances)
        self.tolerances = merged
        self.validate()

    # =========================================================================
    # Validation
    # =========================================================================

    def validate(self) -> None:
        """
        Check parameter ranges and combinations.

        Raises:
            ConfigurationError: If any parameter is invalid
        """
        alpha = self.dual_stab_alpha
        if not isinstance(alpha, (int, float)) or math.isnan(alpha):
            raise ConfigurationError(f"DualStabAlpha must be a number, got {alpha!r}")
        if not 0.0 <= alpha < 1.0:
            raise ConfigurationError(f"DualStabAlpha must lie in [0, 1), got {alpha}")

        if self.pricing_time_budget is not None and self.pricing_time_budget <= 0:
            raise ConfigurationError(
                f"PricingTimeBudget must be positive, got {self.pricing_time_budget}"
            )
        if self.column_compression_threshold < 0:
            raise ConfigurationError(
                "ColumnCompressionThreshold must be >= 0, "
                f"got {self.column_compression_threshold}"
            )
        if self.num_threads < 1:
            raise ConfigurationError(f"num_threads must be >= 1, got {self.num_threads}")
        if self.max_iterations < 0 or self.max_time < 0 or self.max_cut_rounds < 0:
            raise ConfigurationError("Loop limits must be non-negative")
        if self.use_artificials and self.artificial_cost <= 0:
            raise ConfigurationError(
                f"artificial_cost must be positive, got {self.artificial_cost}"
            )
        for name, value in self.tolerances.items():
            if value < 0:
                raise ConfigurationError(f"Tolerance {name!r} must be >= 0, got {value}")

    # =========================================================================
    # Tolerance helpers
    # =========================================================================

    def get_tolerance(self, name: str) -> float:
        """Get a tolerance value by name."""
        return self.tolerances.get(name, 1e-6)

    def set_tolerance(self, name: str, value: float) -> None:
        """Set a tolerance value."""
        if value < 0:
            raise ConfigurationError(f"Tolerance {name!r} must be >= 0, got {value}")
        self.tolerances[name] = value

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "dual_stab": self.dual_stab,
            "dual_stab_alpha": self.dual_stab_alpha,
            "pricing_time_budget": self.pricing_time_budget,
            "column_compression_threshold": self.column_compression_threshold,
            "num_threads": self.num_threads,
            "max_iterations": self.max_iterations,
            "max_time": self.max_time,
            "max_cut_rounds": self.max_cut_rounds,
            "use_artificials": self.use_artificials,
            "artificial_cost": self.artificial_cost,
            "log_level": self.log_level,
            "verbose": self.verbose,
            "tolerances": self.tolerances.copy(),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> 'DecompConfig':
        """Create config from dictionary (field names or option names)."""
        kwargs: dict[str, Any] = {}
        known = set(cls.__dataclass_fields__)
        for key, value in d.items():
            name = OPTION_ALIASES.get(key, key)
            if name not in known:
                raise ConfigurationError(f"Unknown configuration option {key!r}")
            kwargs[name] = value
        if "tolerances" in kwargs:
            kwargs["tolerances"] = dict(kwargs["tolerances"])
        return cls(**kwargs)

    @classmethod
    def from_options(cls, options: dict[str, Any]) -> 'DecompConfig':
        """
        Create config from the recognized option names.

        Args:
            options: e.g. {"DualStab": True, "DualStabAlpha": 0.5,
                "PricingTimeBudget": 2.0, "ColumnCompressionThreshold": 20}

        Returns:
            Validated configuration
        """
        return cls.from_dict(options)

    def save(self, path: Optional[Path] = None) -> None:
        """
        Save configuration to a TOML file.

        Args:
            path: Path to save to (default: ./decompcg.toml)
        """
        if path is None:
            path = Path("decompcg.toml")

        def fmt(value: Any) -> str:
            if isinstance(value, bool):
                return "true" if value else "false"
            if isinstance(value, str):
                return f'"{value}"'
            return repr(value)

        lines = [
            "# decompcg configuration",
            "",
            "[general]",
        ]
        for name, value in self.to_dict().items():
            if name == "tolerances" or value is None:
                continue
            lines.append(f"{name} = {fmt(value)}")

        lines.extend(["", "[tolerances]"])
        for name, value in self.tolerances.items():
            lines.append(f"{name} = {value!r}")

        Path(path).write_text("\n".join(lines) + "\n")

    @classmethod
    def load(cls, path: Optional[Path] = None) -> 'DecompConfig':
        """
        Load configuration from a TOML file.

        Args:
            path: Path to load from (default: $DECOMPCG_CONFIG, ./decompcg.toml
                or ~/.decompcg/config.toml)

        Returns:
            Loaded configuration (or default if no file is found)
        """
        if path is None:
            env_path = os.environ.get("DECOMPCG_CONFIG")
            candidates = [Path(env_path)] if env_path else []
            candidates += [Path("decompcg.toml"), Path.home() / ".decompcg" / "config.toml"]
            path = next((p for p in candidates if p.exists()), None)
            if path is None:
                return cls()

        path = Path(path)
        if not path.exists():
            return cls()

        # Simple TOML-like parsing (no dependency needed)
        config_dict: dict[str, Any] = {"tolerances": {}}
        current_section = None

        for line in path.read_text().splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue

            if line.startswith("[") and line.endswith("]"):
                current_section = line[1:-1]
                continue

            if "=" in line:
                key, raw = line.split("=", 1)
                key = key.strip()
                value = _parse_value(raw.strip())

                if current_section == "tolerances":
                    config_dict["tolerances"][key] = float(value)
                else:
                    config_dict[key] = value

        return cls.from_dict(config_dict)


def _parse_value(raw: str) -> Any:
    """Convert a TOML scalar into a Python value."""
    if raw.startswith('"') and raw.endswith('"'):
        return raw[1:-1]
    lowered = raw.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"Cannot parse configuration value {raw!r}")
