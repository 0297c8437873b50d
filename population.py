"""Generation-boundary population dynamics.

Death, reproduction, obligation sampling, normative drift and moral repair.
Every function takes the model as its explicit context and draws from
``model.rng``.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import TYPE_CHECKING, List

import numpy as np

from affiliation import is_hostile
from obligations import ObligationStatus, ObligationVector, can_transition

if TYPE_CHECKING:
    from model import MoralAgent, ObligationModel

logger = logging.getLogger("obligations.population")


def death_chance(agent: "MoralAgent", generation: int, settings) -> float:
    age = generation - agent.birth_generation
    conflict_penalty = min(agent.internal_conflict * settings.conflict_weight, settings.conflict_cap)
    old_age = settings.old_age_boost * (age - settings.age_threshold) if age > settings.age_threshold else 0.0
    return settings.base_rate + conflict_penalty + old_age


def apply_deaths(model: "ObligationModel") -> List["MoralAgent"]:
    settings = model.config.death
    dead = [
        agent for agent in model.population()
        if model.rng.random() < death_chance(agent, model.generation, settings)
    ]
    for agent in dead:
        model.discard_agent(agent)
        logger.debug("agent %d died at generation %d", agent.unique_id, model.generation)
    return dead


def spawn_child(model: "ObligationModel", parent: "MoralAgent") -> "MoralAgent":
    settings = model.config.reproduction
    rng = model.rng
    child = model.create_agent(birth_generation=model.generation)
    mutation_rate = settings.mutation_base + settings.max_conflict_mutation * parent.internal_conflict
    for norm in model.registry.names():
        if rng.random() < 1 - mutation_rate:
            child.acknowledgments[norm] = parent.acknowledgments.get(norm, False)
        else:
            child.acknowledgments[norm] = bool(rng.random() > 0.5)
    child.last_acknowledgments = dict(child.acknowledgments)
    if rng.random() < settings.preference_inheritance:
        child.norm_preference = parent.norm_preference
    else:
        child.norm_preference = str(rng.choice(model.registry.names()))
    child.scenario_group = parent.scenario_group
    child.affiliation = parent.affiliation
    jitter = rng.uniform(-settings.momentum_jitter, settings.momentum_jitter)
    child.cultural_momentum = float(np.clip(parent.cultural_momentum + jitter, 0.1, 1.0))
    return child


def reproduce(model: "ObligationModel") -> List["MoralAgent"]:
    """Each parent alive at the start of the pass may add one child while under the cap."""
    settings = model.config.reproduction
    cap = model.config.population_cap
    parents = model.population()
    offspring: List["MoralAgent"] = []
    for parent in parents:
        if model.rng.random() < settings.chance and len(parents) + len(offspring) < cap:
            offspring.append(spawn_child(model, parent))
    return offspring


def eligible_targets(model: "ObligationModel", source: "MoralAgent", agents: List["MoralAgent"]) -> List["MoralAgent"]:
    return [
        other for other in agents
        if other is not source
        and model.within_reach(source, other)
        and not is_hostile(model, source, other)
    ]


def pick_target(model: "ObligationModel", candidates: List["MoralAgent"]) -> "MoralAgent":
    if model.toggles.vulnerability_targeting:
        weights = np.array([c.vulnerability for c in candidates], dtype=float)
        total = weights.sum()
        if total > 0:
            return candidates[int(model.rng.choice(len(candidates), p=weights / total))]
    return candidates[int(model.rng.integers(len(candidates)))]


def generate_obligations(model: "ObligationModel") -> List[ObligationVector]:
    """Replace all vectors with a fresh sample; draws with no eligible target are skipped."""
    settings = model.config.obligation
    agents = model.population()
    model.obligations = []
    if len(agents) < 2:
        return model.obligations
    rng = model.rng
    norms = model.registry.names()
    count = min(len(agents) * settings.count_multiplier, settings.max_vectors)
    for _ in range(count):
        source = agents[int(rng.integers(len(agents)))]
        candidates = eligible_targets(model, source, agents)
        if not candidates:
            continue
        target = pick_target(model, candidates)
        jitter = int(rng.integers(0, settings.expiration_jitter)) if settings.expiration_jitter > 0 else 0
        model.obligations.append(
            ObligationVector(
                source,
                target,
                strength=float(rng.uniform(0.2, 1.0)),
                norm_type=str(rng.choice(norms)),
                expiration=settings.expiration_base + jitter,
                generation=model.generation,
                gated=settings.await_arrival,
            )
        )
    logger.debug("generated %d obligations from %d draws", len(model.obligations), count)
    return model.obligations


def directed_preference(model: "ObligationModel", agent: "MoralAgent") -> str | None:
    """Most common preference among positively trusted live peers, other than the agent's own."""
    votes = Counter()
    for other_id, trust in agent.trust_map.items():
        peer = model.lookup(other_id)
        if peer is not None and trust > 0 and peer.norm_preference != agent.norm_preference:
            votes[peer.norm_preference] += 1
    if not votes:
        return None
    return votes.most_common(1)[0][0]


def normative_drift(model: "ObligationModel") -> int:
    rng = model.rng
    norms = model.registry.names()
    spread = model.config.momentum_drift
    drifted = 0
    for agent in model.population():
        if rng.random() < model.config.drift_chance:
            choice = directed_preference(model, agent) if model.toggles.directed_emergence else None
            if choice is None:
                others = [n for n in norms if n != agent.norm_preference]
                if others:
                    choice = str(rng.choice(others))
            if choice is not None:
                agent.norm_preference = choice
                drifted += 1
        if spread > 0:
            agent.cultural_momentum = float(
                np.clip(agent.cultural_momentum + rng.uniform(-spread, spread), 0.1, 1.0)
            )
    return drifted


def apply_moral_repair(model: "ObligationModel") -> int:
    repaired = 0
    for agent in model.population():
        for target_id, status in agent.relational_ledger.items():
            if not can_transition(status, ObligationStatus.REPAIRED):
                continue
            if model.rng.random() < model.config.repair_chance:
                agent.relational_ledger[target_id] = ObligationStatus.REPAIRED
                model.obligation_log.append(
                    {
                        "generation": model.generation,
                        "from": agent.unique_id,
                        "to": target_id,
                        "norm": "n/a",
                        "status": ObligationStatus.REPAIRED.value,
                    }
                )
                repaired += 1
    if repaired:
        logger.debug("repaired %d ledger entries at generation %d", repaired, model.generation)
    return repaired
