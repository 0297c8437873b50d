"""Relational obligation model with trust, debt and emergent affiliations (Mesa 3)."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Callable, Dict, List, Tuple

import numpy as np
from mesa import Agent, DataCollector, Model

import affiliation
import metrics
import population
from norms import AcknowledgeFn, EnforcementContext, EnforceFn, build_registry
from obligations import FAILED_STATUSES, ObligationStatus, ObligationVector
from scenarios import SCENARIOS
from sim_config import SimulationConfig, TrustSettings
from space import SpatialField

logger = logging.getLogger("obligations.model")

ROLES: Tuple[str, ...] = ("initiator", "responder", "mediator", "disruptor")
MORAL_STANCES: Tuple[str, ...] = ("reactive", "proactive")


class MoralAgent(Agent):
    def __init__(self, model: "ObligationModel", birth_generation: int = 0):
        super().__init__(model)
        rng = model.rng
        cfg = model.config
        norms = model.registry.names()
        self.birth_generation = birth_generation
        self.acknowledgments: Dict[str, bool] = {norm: bool(rng.random() > 0.5) for norm in norms}
        self.norm_preference: str = self._initial_preference(norms, cfg.norm_distribution)
        self.last_acknowledgments: Dict[str, bool] = dict(self.acknowledgments)
        self.scenario_group: str = affiliation.classify_scenario(self.acknowledgments)
        self.affiliation: str = affiliation.default_affiliation(self)
        # directed trust keyed by other agent id, unbounded in both directions
        self.trust_map: Dict[int, float] = {}
        # latest status of the obligation issued to each target id
        self.relational_ledger: Dict[int, ObligationStatus] = {}
        self.obligation_attempts = 0
        self.obligation_successes = 0
        self.role: str = str(rng.choice(ROLES))
        self.temperament = float(rng.random())
        self.moral_stance: str = self._initial_stance(cfg.moral_stance_distribution)
        low = max(0.1, cfg.memory_base - 0.2)
        high = min(1.0, cfg.memory_base + 0.2)
        self.memory_length = float(rng.uniform(low, max(low, high)))
        self.cultural_momentum = float(rng.uniform(0.3, 1.0))
        self.vulnerability = float(rng.random())
        self.biography: List[Dict[str, object]] = []

    def _initial_preference(self, norms: List[str], distribution: str) -> str:
        rng = self.model.rng
        if distribution != "uniform" and distribution in norms:
            if rng.random() < 0.6:
                return distribution
            others = [n for n in norms if n != distribution] or norms
            return str(rng.choice(others))
        return str(rng.choice(norms))

    def _initial_stance(self, distribution: str) -> str:
        rng = self.model.rng
        if distribution == "reactive-biased":
            return "reactive" if rng.random() < 0.7 else "proactive"
        if distribution == "proactive-biased":
            return "proactive" if rng.random() < 0.7 else "reactive"
        return str(rng.choice(MORAL_STANCES))

    def ledger_counts(self) -> Counter:
        return Counter(self.relational_ledger.values())

    @property
    def internal_conflict(self) -> int:
        return sum(1 for status in self.relational_ledger.values() if status is ObligationStatus.DENIED)

    @property
    def contradiction_debt(self) -> int:
        return sum(1 for status in self.relational_ledger.values() if status in FAILED_STATUSES)

    @property
    def max_trust(self) -> float:
        return max([0.0, *self.trust_map.values()])

    def acknowledged_count(self) -> int:
        return sum(1 for value in self.acknowledgments.values() if value)

    def record_trust(self, other_id: int, fulfilled: bool, trust: TrustSettings) -> None:
        delta = trust.increment if fulfilled else -trust.decrement
        self.trust_map[other_id] = self.trust_map.get(other_id, 0.0) + delta

    def record_biography(self, generation: int) -> Dict[str, object]:
        entry = {
            "generation": generation,
            "norm_preference": self.norm_preference,
            "acknowledgments": dict(self.acknowledgments),
            "trust_count": len(self.trust_map),
            "trust_max": self.max_trust,
            "momentum": self.cultural_momentum,
            "debt": self.contradiction_debt,
            "conflict": self.internal_conflict,
            "role": self.role,
            "temperament": self.temperament,
            "moral_stance": self.moral_stance,
            "memory_length": self.memory_length,
            "affiliation": self.affiliation,
        }
        self.biography.append(entry)
        return entry

    def acknowledgment_changes(self) -> List[Tuple[str, bool]]:
        """Norms whose acknowledgment moved since the last snapshot; refreshes the snapshot."""
        changes = []
        for norm, value in self.acknowledgments.items():
            if self.last_acknowledgments.get(norm) != value:
                changes.append((norm, value))
                self.last_acknowledgments[norm] = value
        return changes


class ObligationModel(Model):
    """Population of agents issuing and resolving obligations.

    ``step()`` is one enforcement tick. Every ``generation_interval`` ticks
    the model crosses a generation boundary (``evolve_generation``) where
    death, drift, affiliation, logging, repair and reproduction happen.
    """

    def __init__(
        self,
        config: SimulationConfig | None = None,
        seed: int | None = None,
        rng: np.random.Generator | None = None,
        distance: Callable[[MoralAgent, MoralAgent], float] | None = None,
        run_label: str | None = None,
    ):
        super().__init__(seed=seed)
        self.config = config or SimulationConfig()
        self.config.validate()
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.registry = build_registry(
            self.config.norm_types,
            self.config.enforcement.policies,
            default=self.config.enforcement.default_policy,
        )
        self.toggles = self.config.toggles
        self.scenario = self.config.scenario
        self.run_label = run_label or (self.scenario or "random")
        self.field = SpatialField(self)
        self._distance = distance or self.field.distance
        self.generation = 0
        self.generation_timer = 0
        self.step_count = 0
        self.obligations: List[ObligationVector] = []
        self.obligation_log: List[Dict[str, object]] = []
        self.agent_log: List[Dict[str, object]] = []
        self.metrics_log: List[metrics.GenerationMetrics] = []
        self.falsify_flags: List[str] = []
        self.hostile_pairs: set[frozenset] = set()
        self.agent_by_id: Dict[int, MoralAgent] = {}

        for _ in range(self.config.population_size):
            self.create_agent(birth_generation=self.generation)
        self._apply_scenario()

        self.datacollector = DataCollector(
            model_reporters={
                name: (lambda m, key=name: getattr(m.metrics_log[-1], key))
                for name in metrics.GenerationMetrics.field_names()
            }
        )
        self.context = EnforcementContext(
            generation=self.generation,
            obligation_log=self.obligation_log,
            config=self.config,
            registry=self.registry,
            distance=self._distance,
            rng=self.rng,
        )
        self.running = True
        population.generate_obligations(self)
        metrics.log_generation(self)
        logger.info(
            "model ready: agents=%d norms=%s scenario=%s",
            len(self.agent_by_id), self.registry.names(), self.scenario,
        )

    def _apply_scenario(self) -> None:
        if self.scenario is None:
            return
        apply = SCENARIOS[self.scenario]
        for agent in self.population():
            apply(agent)
            agent.scenario_group = self.scenario
            agent.affiliation = affiliation.default_affiliation(agent)
            agent.last_acknowledgments = dict(agent.acknowledgments)

    def create_agent(self, birth_generation: int) -> MoralAgent:
        agent = MoralAgent(self, birth_generation=birth_generation)
        self.field.place(agent)
        self.agent_by_id[agent.unique_id] = agent
        return agent

    def discard_agent(self, agent: MoralAgent) -> None:
        self.field.remove(agent)
        self.agent_by_id.pop(agent.unique_id, None)
        agent.remove()

    def population(self) -> List[MoralAgent]:
        return list(self.agent_by_id.values())

    def lookup(self, agent_id: int) -> MoralAgent | None:
        return self.agent_by_id.get(agent_id)

    def distance(self, a: MoralAgent, b: MoralAgent) -> float:
        return self._distance(a, b)

    def within_reach(self, a: MoralAgent, b: MoralAgent) -> bool:
        return self._distance(a, b) < self.config.obligation.proximity_threshold

    def add_norm(
        self,
        name: str,
        policy: str | EnforceFn = "threshold",
        acknowledge: AcknowledgeFn | None = None,
    ) -> bool:
        """Register a norm at runtime; live agents get a random acknowledgment for it."""
        key = name.strip().lower()
        if not key or not self.registry.register(key, policy, acknowledge):
            return False
        for agent in self.population():
            agent.acknowledgments[key] = bool(self.rng.random() > 0.5)
            agent.last_acknowledgments[key] = agent.acknowledgments[key]
        logger.info("norm %s added at generation %d", key, self.generation)
        return True

    def enforce_obligations(self) -> None:
        self.context.generation = self.generation
        for vector in self.obligations:
            vector.enforce(self.context)

    def step(self):
        self.step_count += 1
        self.enforce_obligations()
        self.field.advance(self.obligations)
        self.generation_timer += 1
        if self.generation_timer >= self.config.generation_interval:
            self.evolve_generation()
            self.generation_timer = 0

    def evolve_generation(self) -> metrics.GenerationMetrics:
        died = population.apply_deaths(self)
        self.generation += 1
        population.generate_obligations(self)
        population.normative_drift(self)
        affiliation.update_scenarios(self)
        affiliation.update_affiliations(self)
        affiliation.update_group_dynamics(self)
        self.record_generation()
        record = metrics.log_generation(self)
        repaired = population.apply_moral_repair(self) if self.toggles.moral_repair else 0
        born = population.reproduce(self)
        if not self.agent_by_id:
            self.running = False
        logger.info(
            "generation %d: population=%d died=%d born=%d repaired=%d fulfillment=%.2f",
            self.generation, len(self.agent_by_id), len(died), len(born), repaired, record.fulfillment_rate,
        )
        return record

    def record_generation(self) -> None:
        for agent in self.population():
            agent.record_biography(self.generation)
            for norm, value in agent.acknowledgment_changes():
                self.falsify_flags.append(
                    f"Agent #{agent.unique_id} changed {norm} to {value} @ Gen {self.generation}"
                )
            self.agent_log.append(metrics.agent_log_entry(agent, self.generation, self.run_label))

    def run_generations(self, generations: int) -> None:
        target = self.generation + generations
        while self.running and self.generation < target:
            self.step()

    def metrics_frame(self):
        return self.datacollector.get_model_vars_dataframe()

    def hostile(self, group_a: str, group_b: str) -> bool:
        return affiliation.pair_key(group_a, group_b) in self.hostile_pairs
