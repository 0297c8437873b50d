#!/usr/bin/env python3
"""Model wiring: ticks, generation boundaries, reproducibility and the spatial field."""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import math

from affiliation import classify_scenario
from model import MoralAgent, ObligationModel
from obligations import ObligationStatus, ObligationVector
from sim_config import SimulationConfig


def small_config(**overrides):
    return SimulationConfig(population_size=20, generation_interval=5).with_overrides(**overrides)


def test_model_initialization():
    """The model builds its population, vectors and the generation 0 record."""
    model = ObligationModel(config=small_config(), seed=42)
    agents = model.population()
    assert len(agents) == 20
    assert len(model.agents) == 20, "agents are registered with Mesa"
    assert all(isinstance(a, MoralAgent) for a in agents)
    assert len({a.unique_id for a in agents}) == 20, "ids are unique"
    assert model.generation == 0
    assert len(model.metrics_log) == 1 and model.metrics_log[0].generation == 0
    for agent in agents:
        assert set(agent.acknowledgments) == set(model.registry.names())
        assert agent.norm_preference in model.registry
        assert agent.scenario_group == "pluralist"
        assert agent.affiliation == f"pref_{agent.norm_preference}"
        assert agent.role in ("initiator", "responder", "mediator", "disruptor")
        assert agent.moral_stance in ("reactive", "proactive")
        assert 0.1 <= agent.memory_length <= 1.0
        assert 0.3 <= agent.cultural_momentum <= 1.0


def test_unscripted_agents_start_classified():
    """Without a preset every agent starts labelled by its own acknowledgments."""
    model = ObligationModel(config=small_config(scenario=None), seed=9)
    for agent in model.population():
        assert agent.scenario_group == classify_scenario(agent.acknowledgments)
        assert agent.scenario_group in ("utopian", "collapsed", "authoritarian", "allCare", "pluralist")
        assert agent.scenario_group not in model.registry.names(), "a norm name is not a scenario label"


def test_steps_cross_generation_boundary():
    """Every ``generation_interval`` steps one generation elapses."""
    model = ObligationModel(config=small_config(), seed=1)
    for _ in range(4):
        model.step()
    assert model.generation == 0
    model.step()
    assert model.generation == 1
    assert model.step_count == 5
    assert len(model.metrics_log) == 2


def test_same_seed_same_run():
    """Equal seeds give identical metrics and obligation logs."""
    first = ObligationModel(config=small_config(), seed=2024)
    second = ObligationModel(config=small_config(), seed=2024)
    first.run_generations(3)
    second.run_generations(3)
    assert first.metrics_log == second.metrics_log
    assert first.obligation_log == second.obligation_log
    assert first.falsify_flags == second.falsify_flags


def test_population_never_exceeds_cap():
    """Reproduction stops at ten times the initial population."""
    config = SimulationConfig(population_size=3, generation_interval=1).with_overrides(
        reproduction={"chance": 1.0}, death={"base_rate": 0.0, "conflict_weight": 0.0, "old_age_boost": 0.0},
    )
    model = ObligationModel(config=config, seed=9, distance=lambda a, b: math.inf)
    for _ in range(8):
        model.run_generations(1)
        assert len(model.population()) <= 30


def test_extinction_stops_the_model():
    """A population that dies out stops running."""
    model = ObligationModel(config=small_config(death={"base_rate": 1.0}), seed=4)
    model.run_generations(5)
    assert model.population() == []
    assert model.running is False
    assert model.generation == 1
    assert model.metrics_log[-1].population == 0


def test_acknowledgment_changes_are_flagged():
    """Changing an acknowledgment between generations leaves a textual flag."""
    config = small_config(death={"base_rate": 0.0, "conflict_weight": 0.0})
    model = ObligationModel(config=config, seed=8)
    agent = model.population()[0]
    previous = agent.acknowledgments["care"]
    agent.acknowledgments["care"] = not previous
    model.run_generations(1)
    assert model.falsify_flags == [f"Agent #{agent.unique_id} changed care to {not previous} @ Gen 1"]
    model.run_generations(1)
    assert len(model.falsify_flags) == 1, "an unchanged acknowledgment is not flagged again"


def test_biographies_and_agent_log_grow_per_generation():
    """Each surviving agent appends one biography entry and one log row per generation."""
    config = small_config(death={"base_rate": 0.0, "conflict_weight": 0.0}, reproduction={"chance": 0.0})
    model = ObligationModel(config=config, seed=6)
    model.run_generations(2)
    assert len(model.agent_log) == 40
    for agent in model.population():
        assert [entry["generation"] for entry in agent.biography] == [1, 2]


def test_conflict_and_debt_follow_ledger():
    """Conflict and debt are derived from the ledger, never counted separately."""
    model = ObligationModel(config=small_config(), seed=3)
    agent = model.population()[0]
    agent.relational_ledger = {1: ObligationStatus.DENIED, 2: ObligationStatus.EXPIRED, 3: ObligationStatus.FULFILLED}
    assert agent.internal_conflict == 1
    assert agent.contradiction_debt == 2
    agent.relational_ledger[1] = ObligationStatus.REPAIRED
    assert agent.internal_conflict == 0
    assert agent.contradiction_debt == 1


def test_spatial_distance_and_arrival_signal():
    """The field measures toroidal distance and signals gated vectors on arrival."""
    model = ObligationModel(config=small_config(obligation={"await_arrival": True}), seed=12)
    a, b = model.population()[:2]
    model.field.space.move_agent(a, (5.0, 10.0))
    model.field.space.move_agent(b, (995.0, 10.0))
    assert math.isclose(model.distance(a, b), 10.0, abs_tol=1e-6), "distance wraps around the torus"

    vec = ObligationVector(a, b, strength=0.5, norm_type="legal", expiration=10, gated=True)
    model.field.advance([vec])
    assert vec.ready, "a pair within reach raises the arrival signal"

    model.field.space.move_agent(b, (500.0, 300.0))
    far = ObligationVector(a, b, strength=0.5, norm_type="legal", expiration=10, gated=True)
    before = model.distance(a, b)
    model.field.advance([far])
    assert not far.ready
    assert model.distance(a, b) < before, "the source is pulled toward its target"


def main():
    tests = [
        test_model_initialization,
        test_unscripted_agents_start_classified,
        test_steps_cross_generation_boundary,
        test_same_seed_same_run,
        test_population_never_exceeds_cap,
        test_extinction_stops_the_model,
        test_acknowledgment_changes_are_flagged,
        test_biographies_and_agent_log_grow_per_generation,
        test_conflict_and_debt_follow_ledger,
        test_spatial_distance_and_arrival_signal,
    ]
    for test in tests:
        test()
        print(f"  ✓ {test.__name__}")
    print(f"{len(tests)} model tests passed")


if __name__ == "__main__":
    main()
