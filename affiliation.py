"""Scenario classification, trust-driven affiliation and group hostility/merging."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, FrozenSet, List

if TYPE_CHECKING:
    from model import MoralAgent, ObligationModel

logger = logging.getLogger("obligations.affiliation")


def default_affiliation(agent: "MoralAgent") -> str:
    return f"pref_{agent.norm_preference}"


def pair_key(group_a: str, group_b: str) -> FrozenSet[str]:
    return frozenset((group_a, group_b))


def classify_scenario(acknowledgments: Dict[str, bool]) -> str:
    """Label an acknowledgment pattern; affiliation plays no part."""
    acknowledged = [norm for norm, value in acknowledgments.items() if value]
    if acknowledgments and len(acknowledged) == len(acknowledgments):
        return "utopian"
    if not acknowledged:
        return "collapsed"
    if len(acknowledged) == 1:
        if acknowledged[0] == "legal":
            return "authoritarian"
        if acknowledged[0] == "care":
            return "allCare"
    return "pluralist"


def update_scenarios(model: "ObligationModel") -> None:
    for agent in model.population():
        agent.scenario_group = classify_scenario(agent.acknowledgments)


def best_affiliation(agent: "MoralAgent", model: "ObligationModel") -> str:
    scores: Dict[str, float] = {}
    for other_id, trust in agent.trust_map.items():
        neighbour = model.lookup(other_id)
        if neighbour is None:
            continue
        group = neighbour.affiliation or default_affiliation(neighbour)
        scores[group] = scores.get(group, 0.0) + trust
    if not scores:
        return default_affiliation(agent)
    best, best_score = agent.affiliation, float("-inf")
    for group, score in scores.items():
        if score > best_score:
            best, best_score = group, score
    return best


def update_affiliations(model: "ObligationModel") -> None:
    # in place and in population order: later agents see earlier reassignments
    for agent in model.population():
        agent.affiliation = best_affiliation(agent, model)


def group_members(model: "ObligationModel") -> Dict[str, List["MoralAgent"]]:
    groups: Dict[str, List["MoralAgent"]] = {}
    for agent in model.population():
        groups.setdefault(agent.affiliation, []).append(agent)
    return groups


def average_group_trust(members_a: List["MoralAgent"], members_b: List["MoralAgent"]) -> float:
    """Pooled mean over every directed link between the groups; missing trust counts as 0."""
    total = 0.0
    count = 0
    for left, right in ((members_a, members_b), (members_b, members_a)):
        for a in left:
            for b in right:
                total += a.trust_map.get(b.unique_id, 0.0)
                count += 1
    return total / count if count else 0.0


def update_group_dynamics(model: "ObligationModel") -> Dict[str, str]:
    """Recompute hostile pairs and merge high-trust groups into the larger partner.

    Returns the applied merge plan (absorbed label -> surviving label).
    """
    settings = model.config.affiliation
    model.hostile_pairs.clear()
    groups = group_members(model)
    labels = list(groups)
    merges: Dict[str, str] = {}
    for i, g1 in enumerate(labels):
        for g2 in labels[i + 1:]:
            avg = average_group_trust(groups[g1], groups[g2])
            if avg < settings.hostility_threshold:
                model.hostile_pairs.add(pair_key(g1, g2))
            elif avg > settings.merge_threshold:
                if len(groups[g1]) >= len(groups[g2]):
                    merges[g2] = g1
                else:
                    merges[g1] = g2
    for source, target in merges.items():
        for agent in groups[source]:
            agent.affiliation = target
        logger.debug("group %s merged into %s (%d members)", source, target, len(groups[source]))
    if model.hostile_pairs:
        logger.debug("%d hostile group pairs at generation %d", len(model.hostile_pairs), model.generation)
    return merges


def is_hostile(model: "ObligationModel", source: "MoralAgent", target: "MoralAgent") -> bool:
    return pair_key(source.affiliation, target.affiliation) in model.hostile_pairs
