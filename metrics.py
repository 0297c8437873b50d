"""Per-generation aggregation over relational ledgers, agent log rows and the interpretive summary."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Sequence, Tuple

from obligations import FAILED_STATUSES, ObligationStatus

if TYPE_CHECKING:
    from model import MoralAgent, ObligationModel


@dataclass(frozen=True)
class GenerationMetrics:
    generation: int
    population: int
    total_obligations_issued: int
    total_fulfilled: int
    total_denied: int
    total_expired: int
    total_repaired: int
    fulfillment_rate: float
    relational_integrity: float
    avg_debt: float
    avg_conflict: float
    repair_events: int
    emergent_regimes: int

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in dataclasses.fields(cls))

    def as_dict(self) -> Dict[str, object]:
        return dataclasses.asdict(self)


def compute_generation_metrics(agents: Sequence["MoralAgent"], generation: int) -> GenerationMetrics:
    """Aggregate ledger outcomes over the live population.

    ``avg_conflict`` is the failed share of ledger entries whose source and
    live target sit in different affiliations. ``avg_debt`` treats denied and
    expired entries as a debt proxy spread over the population.
    """
    by_id = {agent.unique_id: agent for agent in agents}
    counts = {status: 0 for status in ObligationStatus}
    issued = 0
    cross_total = 0
    cross_failed = 0
    for agent in agents:
        issued += len(agent.relational_ledger)
        for target_id, status in agent.relational_ledger.items():
            counts[status] += 1
            target = by_id.get(target_id)
            if target is None or not agent.affiliation or not target.affiliation:
                continue
            if agent.affiliation != target.affiliation:
                cross_total += 1
                if status in FAILED_STATUSES:
                    cross_failed += 1

    fulfilled = counts[ObligationStatus.FULFILLED]
    denied = counts[ObligationStatus.DENIED]
    expired = counts[ObligationStatus.EXPIRED]
    repaired = counts[ObligationStatus.REPAIRED]
    resolved = fulfilled + denied + expired
    return GenerationMetrics(
        generation=generation,
        population=len(agents),
        total_obligations_issued=issued,
        total_fulfilled=fulfilled,
        total_denied=denied,
        total_expired=expired,
        total_repaired=repaired,
        fulfillment_rate=fulfilled / issued if issued else 0.0,
        relational_integrity=fulfilled / resolved if resolved else 0.0,
        avg_debt=(denied + expired) / len(agents) if agents else 0.0,
        avg_conflict=cross_failed / cross_total if cross_total else 0.0,
        repair_events=repaired,
        emergent_regimes=len({agent.affiliation for agent in agents if agent.affiliation}),
    )


def log_generation(model: "ObligationModel") -> GenerationMetrics:
    record = compute_generation_metrics(model.population(), model.generation)
    model.metrics_log.append(record)
    model.datacollector.collect(model)
    return record


def agent_log_entry(agent: "MoralAgent", generation: int, scenario: str) -> Dict[str, object]:
    counts = agent.ledger_counts()
    row: Dict[str, object] = {
        "generation": generation,
        "scenario": scenario,
        "id": agent.unique_id,
        "norm_preference": agent.norm_preference or "n/a",
    }
    for norm, value in agent.acknowledgments.items():
        row[f"{norm}_ack"] = bool(value)
    row.update(
        {
            "attempts": agent.obligation_attempts,
            "successes": agent.obligation_successes,
            "conflict": agent.internal_conflict,
            "debt": agent.contradiction_debt,
            "momentum": round(agent.cultural_momentum, 3),
            "trust_count": len(agent.trust_map),
            "trust_max": agent.max_trust,
            "fulfilled": counts[ObligationStatus.FULFILLED],
            "denied": counts[ObligationStatus.DENIED],
            "expired": counts[ObligationStatus.EXPIRED],
            "repaired": counts[ObligationStatus.REPAIRED],
            "role": agent.role,
            "temperament": agent.temperament,
            "moral_stance": agent.moral_stance,
            "scenario_group": agent.scenario_group,
            "memory_length": agent.memory_length,
            "affiliation": agent.affiliation,
        }
    )
    return row


def behaviour_band(fulfillment_rate: float) -> str:
    if fulfillment_rate >= 0.75:
        return "Strong prosocial alignment"
    if fulfillment_rate >= 0.5:
        return "Moderate cooperation"
    if fulfillment_rate >= 0.25:
        return "Weak norm coherence"
    return "Ethical fragmentation"


def top_trusted(agents: Sequence["MoralAgent"], limit: int = 3) -> List["MoralAgent"]:
    connected = [agent for agent in agents if len(agent.trust_map) > 3]
    return sorted(connected, key=lambda agent: agent.max_trust, reverse=True)[:limit]


def interpretive_summary(model: "ObligationModel") -> str:
    latest = model.metrics_log[-1] if model.metrics_log else None
    agents = model.population()
    fulfillment = latest.fulfillment_rate if latest else 0.0
    spread = ", ".join(
        f"{norm}: {sum(1 for a in agents if a.acknowledgments.get(norm))}"
        for norm in model.registry.names()
    )
    trusted = ", ".join(f"#{a.unique_id} (trust {a.max_trust:g})" for a in top_trusted(agents)) or "None"
    avg_links = sum(len(a.trust_map) for a in agents) / len(agents) if agents else 0.0
    lines = [
        f"Interpretive summary, generation {latest.generation if latest else 0}",
        f"Scenario: {model.scenario or 'random'}",
        f"Behavioural assessment: {behaviour_band(fulfillment)}",
        "",
        "Core metrics:",
        f"  fulfillment rate      {fulfillment:.2f}",
    ]
    if latest:
        lines += [
            f"  relational integrity  {latest.relational_integrity:.2f}",
            f"  contradiction debt    {latest.avg_debt:.2f}",
            f"  intergroup conflict   {latest.avg_conflict:.2f}",
            f"  repair events         {latest.repair_events}",
        ]
    lines += [
        f"  avg trust connections {avg_links:.2f}",
        "",
        f"Norm acknowledgment: {spread}",
        f"Top trusted agents: {trusted}",
    ]
    return "\n".join(lines)
