"""Configuration for the relational obligation model.

All tunables live in frozen dataclasses so a model run holds an immutable
snapshot. Loosely typed input (CLI flags, JSON) goes through
``SimulationConfig.from_mapping`` which coerces and validates before anything
reaches the core.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Dict, Mapping, Tuple

DEFAULT_NORMS: Tuple[str, ...] = ("legal", "apriori", "care", "epistemic")
POLICY_TAGS: Tuple[str, ...] = ("threshold", "probabilistic")
STANCE_DISTRIBUTIONS: Tuple[str, ...] = ("uniform", "reactive-biased", "proactive-biased")


class ConfigError(ValueError):
    """Raised when configuration input cannot be used by the model."""


@dataclass(frozen=True)
class ObligationSettings:
    proximity_threshold: float = 150.0
    count_multiplier: int = 2
    max_vectors: int = 500
    expiration_base: int = 10
    expiration_jitter: int = 10
    await_arrival: bool = False


@dataclass(frozen=True)
class TrustSettings:
    increment: float = 1.0
    decrement: float = 1.0


@dataclass(frozen=True)
class ReproductionSettings:
    chance: float = 0.25
    mutation_base: float = 0.05
    max_conflict_mutation: float = 0.1
    preference_inheritance: float = 0.75
    momentum_jitter: float = 0.1


@dataclass(frozen=True)
class DeathSettings:
    base_rate: float = 0.05
    conflict_weight: float = 0.01
    conflict_cap: float = 0.1
    old_age_boost: float = 0.05
    age_threshold: int = 5


@dataclass(frozen=True)
class AffiliationSettings:
    hostility_threshold: float = 0.5
    merge_threshold: float = 3.0


@dataclass(frozen=True)
class EnforcementSettings:
    default_policy: str = "threshold"
    policies: Dict[str, str] = field(default_factory=dict)
    distant_factor: float = 0.5
    unacknowledged_factor: float = 0.25

    def policy_for(self, norm: str) -> str:
        return self.policies.get(norm, self.default_policy)


@dataclass(frozen=True)
class Toggles:
    moral_repair: bool = True
    directed_emergence: bool = False
    vulnerability_targeting: bool = False


@dataclass(frozen=True)
class SimulationConfig:
    population_size: int = 100
    generation_interval: int = 100
    max_generations: int = 100
    norm_types: Tuple[str, ...] = DEFAULT_NORMS
    scenario: str | None = "pluralist"
    repair_chance: float = 0.1
    drift_chance: float = 0.02
    momentum_drift: float = 0.02
    norm_distribution: str = "uniform"
    memory_base: float = 0.6
    moral_stance_distribution: str = "uniform"
    world_width: float = 1000.0
    world_height: float = 600.0
    motion_speed: float = 4.0
    obligation: ObligationSettings = field(default_factory=ObligationSettings)
    trust: TrustSettings = field(default_factory=TrustSettings)
    reproduction: ReproductionSettings = field(default_factory=ReproductionSettings)
    death: DeathSettings = field(default_factory=DeathSettings)
    affiliation: AffiliationSettings = field(default_factory=AffiliationSettings)
    enforcement: EnforcementSettings = field(default_factory=EnforcementSettings)
    toggles: Toggles = field(default_factory=Toggles)

    @property
    def population_cap(self) -> int:
        return self.population_size * 10

    def with_overrides(self, **changes) -> "SimulationConfig":
        """Copy with top-level fields replaced; nested groups accept dicts."""
        resolved = {}
        for key, value in changes.items():
            current = getattr(self, key)
            if dataclasses.is_dataclass(current) and isinstance(value, Mapping):
                value = dataclasses.replace(current, **value)
            resolved[key] = value
        updated = dataclasses.replace(self, **resolved)
        updated.validate()
        return updated

    def validate(self) -> None:
        if self.population_size <= 0:
            raise ConfigError(f"population_size must be positive, got {self.population_size}")
        if self.generation_interval <= 0:
            raise ConfigError("generation_interval must be positive")
        if not self.norm_types:
            raise ConfigError("at least one norm type is required")
        if len(set(self.norm_types)) != len(self.norm_types):
            raise ConfigError(f"duplicate norm types in {self.norm_types}")
        if self.scenario is not None:
            from scenarios import SCENARIO_NAMES

            if self.scenario not in SCENARIO_NAMES:
                raise ConfigError(f"unknown scenario {self.scenario!r}")
        if self.norm_distribution != "uniform" and self.norm_distribution not in self.norm_types:
            raise ConfigError(f"unknown norm distribution {self.norm_distribution!r}")
        if self.moral_stance_distribution not in STANCE_DISTRIBUTIONS:
            raise ConfigError(f"unknown moral stance distribution {self.moral_stance_distribution!r}")
        probabilities = {
            "repair_chance": self.repair_chance,
            "drift_chance": self.drift_chance,
            "reproduction.chance": self.reproduction.chance,
            "reproduction.preference_inheritance": self.reproduction.preference_inheritance,
            "enforcement.distant_factor": self.enforcement.distant_factor,
            "enforcement.unacknowledged_factor": self.enforcement.unacknowledged_factor,
        }
        for name, value in probabilities.items():
            if not 0.0 <= value <= 1.0:
                raise ConfigError(f"{name} must lie in [0, 1], got {value}")
        if self.obligation.proximity_threshold < 0:
            raise ConfigError("obligation.proximity_threshold must be non-negative")
        if self.obligation.expiration_base < 0 or self.obligation.expiration_jitter < 0:
            raise ConfigError("obligation expiration settings must be non-negative")
        if self.obligation.max_vectors < 0 or self.obligation.count_multiplier < 0:
            raise ConfigError("obligation sampling settings must be non-negative")
        if self.world_width <= 0 or self.world_height <= 0:
            raise ConfigError("world dimensions must be positive")
        for norm, tag in {None: self.enforcement.default_policy, **self.enforcement.policies}.items():
            if tag not in POLICY_TAGS:
                raise ConfigError(f"unknown enforcement policy {tag!r} for norm {norm!r}")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, object]) -> "SimulationConfig":
        """Build a validated config from loosely typed input.

        Nested groups are given as sub-mappings, e.g. ``{"death": {"base_rate": "0.1"}}``.
        Unknown keys and values that cannot be coerced raise ``ConfigError``.
        """
        values = _coerce_fields(cls, raw, prefix="")
        config = cls(**values)
        config.validate()
        return config


def _coerce_fields(cls, raw: Mapping[str, object], prefix: str) -> Dict[str, object]:
    fields = {f.name: f for f in dataclasses.fields(cls)}
    defaults = cls()
    values: Dict[str, object] = {}
    for key, value in raw.items():
        if key not in fields:
            raise ConfigError(f"unknown configuration key {prefix}{key!r}")
        current = getattr(defaults, key)
        name = f"{prefix}{key}"
        if dataclasses.is_dataclass(current):
            if not isinstance(value, Mapping):
                raise ConfigError(f"{name} must be a mapping")
            values[key] = type(current)(**_coerce_fields(type(current), value, prefix=f"{name}."))
        elif key == "policies":
            if not isinstance(value, Mapping):
                raise ConfigError(f"{name} must be a mapping of norm to policy")
            values[key] = {str(k): str(v) for k, v in value.items()}
        elif key == "norm_types":
            if isinstance(value, str):
                value = [part for part in value.split(",")]
            values[key] = tuple(str(v).strip().lower() for v in value if str(v).strip())
        else:
            values[key] = _coerce_scalar(name, current, value)
    return values


def _coerce_scalar(name: str, current: object, value: object) -> object:
    if value is None:
        if current is None or name == "scenario":
            return None
        raise ConfigError(f"{name} may not be empty")
    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in {"1", "true", "yes", "on"}:
            return True
        if text in {"0", "false", "no", "off"}:
            return False
        raise ConfigError(f"{name} expects a boolean, got {value!r}")
    if isinstance(current, (int, float)):
        if isinstance(value, bool):
            raise ConfigError(f"{name} expects a number, got {value!r}")
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{name} expects a number, got {value!r}") from exc
        if isinstance(current, int):
            if not number.is_integer():
                raise ConfigError(f"{name} expects an integer, got {value!r}")
            return int(number)
        return number
    return str(value)
