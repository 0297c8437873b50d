"""Norm registry and enforcement policies.

Each norm pairs an acknowledgment predicate with one of the named
enforcement policies. ``threshold`` resolves deterministically on
acknowledgment, age and proximity; ``probabilistic`` draws a single outcome
weighted by strength, proximity and acknowledgment. The policy is chosen per
norm through ``EnforcementSettings``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, Iterator, List, Mapping

import numpy as np

from obligations import ObligationStatus, ObligationVector
from sim_config import SimulationConfig

if TYPE_CHECKING:
    from model import MoralAgent

logger = logging.getLogger("obligations.norms")

EnforceFn = Callable[[ObligationVector, "EnforcementContext"], ObligationStatus]
AcknowledgeFn = Callable[["MoralAgent"], bool]
DistanceFn = Callable[["MoralAgent", "MoralAgent"], float]


@dataclass
class EnforcementContext:
    """State shared by every enforcement call within one step."""

    generation: int
    obligation_log: List[Dict[str, object]]
    config: SimulationConfig
    registry: "NormRegistry"
    distance: DistanceFn
    rng: np.random.Generator

    def within_reach(self, a: "MoralAgent", b: "MoralAgent") -> bool:
        return self.distance(a, b) < self.config.obligation.proximity_threshold


def acknowledged_by(norm: str) -> AcknowledgeFn:
    def acknowledge(agent: "MoralAgent") -> bool:
        return bool(agent.acknowledgments.get(norm, False))

    return acknowledge


def threshold_enforce(vector: ObligationVector, ctx: EnforcementContext) -> ObligationStatus:
    source, target = vector.source, vector.target
    norm = ctx.registry.get(vector.norm_type)
    acknowledge = norm.acknowledge if norm is not None else acknowledged_by(vector.norm_type)
    if not (acknowledge(source) and acknowledge(target)):
        return vector.settle(ObligationStatus.DENIED, ctx, overwrite=False)
    if vector.expired_by_age:
        return vector.settle(ObligationStatus.EXPIRED, ctx, overwrite=False)
    if ctx.within_reach(source, target):
        return vector.settle(ObligationStatus.FULFILLED, ctx, overwrite=True)
    vector.age += 1
    return vector.status


def success_probability(vector: ObligationVector, ctx: EnforcementContext) -> float:
    settings = ctx.config.enforcement
    norm = ctx.registry.get(vector.norm_type)
    acknowledge = norm.acknowledge if norm is not None else acknowledged_by(vector.norm_type)
    proximity_factor = 1.0 if ctx.within_reach(vector.source, vector.target) else settings.distant_factor
    both_acknowledge = acknowledge(vector.source) and acknowledge(vector.target)
    acknowledgment_factor = 1.0 if both_acknowledge else settings.unacknowledged_factor
    return vector.strength * proximity_factor * acknowledgment_factor


def probabilistic_enforce(vector: ObligationVector, ctx: EnforcementContext) -> ObligationStatus:
    p = success_probability(vector, ctx)
    outcome = ObligationStatus.FULFILLED if ctx.rng.random() < p else ObligationStatus.DENIED
    return vector.settle(outcome, ctx, overwrite=True)


POLICIES: Dict[str, EnforceFn] = {
    "threshold": threshold_enforce,
    "probabilistic": probabilistic_enforce,
}


@dataclass(frozen=True)
class NormDefinition:
    name: str
    policy: str
    enforce: EnforceFn = field(repr=False)
    acknowledge: AcknowledgeFn = field(repr=False)


class NormRegistry:
    """Open, mutable set of norms keyed by identifier."""

    def __init__(self) -> None:
        self._norms: Dict[str, NormDefinition] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._norms

    def __iter__(self) -> Iterator[NormDefinition]:
        return iter(self._norms.values())

    def __len__(self) -> int:
        return len(self._norms)

    def names(self) -> List[str]:
        return list(self._norms)

    def get(self, name: str) -> NormDefinition | None:
        return self._norms.get(name)

    def register(
        self,
        name: str,
        enforce: str | EnforceFn = "threshold",
        acknowledge: AcknowledgeFn | None = None,
    ) -> bool:
        """Add a norm. Returns False and keeps the existing entry for a duplicate name."""
        if name in self._norms:
            logger.debug("norm %s already registered; keeping existing definition", name)
            return False
        if isinstance(enforce, str):
            if enforce not in POLICIES:
                raise ValueError(f"unknown enforcement policy {enforce!r}")
            policy, enforce_fn = enforce, POLICIES[enforce]
        else:
            policy, enforce_fn = getattr(enforce, "__name__", "custom"), enforce
        self._norms[name] = NormDefinition(
            name=name,
            policy=policy,
            enforce=enforce_fn,
            acknowledge=acknowledge or acknowledged_by(name),
        )
        logger.debug("registered norm %s with %s policy", name, policy)
        return True

    def enforce(self, vector: ObligationVector, ctx: EnforcementContext) -> ObligationStatus:
        norm = self._norms.get(vector.norm_type)
        if norm is None:
            return threshold_enforce(vector, ctx)
        return norm.enforce(vector, ctx)


def build_registry(norm_types: List[str] | tuple, policies: Mapping[str, str] | None = None, default: str = "threshold") -> NormRegistry:
    registry = NormRegistry()
    policies = policies or {}
    for name in norm_types:
        registry.register(name, policies.get(name, default))
    return registry
