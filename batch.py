from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Sequence, Tuple

import pandas as pd

from model import ObligationModel
from scenarios import SCENARIO_NAMES
from sim_config import SimulationConfig, Toggles

logger = logging.getLogger("obligations.batch")


@dataclass(frozen=True)
class ToggleCombo:
    moral_repair: bool
    directed_emergence: bool
    vulnerability_targeting: bool

    def as_toggles(self) -> Toggles:
        return Toggles(
            moral_repair=self.moral_repair,
            directed_emergence=self.directed_emergence,
            vulnerability_targeting=self.vulnerability_targeting,
        )


TOGGLE_COMBOS: Tuple[ToggleCombo, ...] = (
    ToggleCombo(moral_repair=True, directed_emergence=False, vulnerability_targeting=False),
    ToggleCombo(moral_repair=False, directed_emergence=True, vulnerability_targeting=False),
    ToggleCombo(moral_repair=True, directed_emergence=True, vulnerability_targeting=True),
)


@dataclass
class BatchResult:
    metrics: pd.DataFrame
    agent_log: pd.DataFrame
    obligation_log: pd.DataFrame
    runs: pd.DataFrame


def build_batch_sequence(
    repetitions: int,
    scenarios: Sequence[str] | None = None,
    combos: Sequence[ToggleCombo] = TOGGLE_COMBOS,
) -> List[Tuple[str, ToggleCombo]]:
    """Scenario x toggle combination pairs, each repeated ``repetitions`` times back to back."""
    names = list(scenarios) if scenarios is not None else list(SCENARIO_NAMES)
    sequence = []
    for scenario in names:
        for combo in combos:
            for _ in range(repetitions):
                sequence.append((scenario, combo))
    return sequence


def run_batch(
    repetitions: int,
    generations: int,
    base_config: SimulationConfig | None = None,
    seed: int | None = None,
    scenarios: Sequence[str] | None = None,
    combos: Sequence[ToggleCombo] = TOGGLE_COMBOS,
    distance: Callable | None = None,
) -> BatchResult:
    """Run every combination sequentially on a fresh model and pool the tagged logs."""
    base_config = base_config or SimulationConfig()
    metric_rows, agent_rows, obligation_rows, run_rows = [], [], [], []
    sequence = build_batch_sequence(repetitions, scenarios, combos)
    for run, (scenario, combo) in enumerate(sequence, start=1):
        config = base_config.with_overrides(scenario=scenario, toggles=combo.as_toggles())
        run_seed = None if seed is None else seed + run
        model = ObligationModel(config=config, seed=run_seed, distance=distance, run_label=scenario)
        model.run_generations(generations)
        tag = {"run": run, "batch_scenario": scenario}
        metric_rows.extend({**record.as_dict(), **tag} for record in model.metrics_log)
        agent_rows.extend({**row, **tag} for row in model.agent_log)
        obligation_rows.extend({**row, **tag} for row in model.obligation_log)
        last = model.metrics_log[-1]
        run_rows.append(
            dict(
                run=run,
                batch_scenario=scenario,
                seed=run_seed,
                moral_repair=combo.moral_repair,
                directed_emergence=combo.directed_emergence,
                vulnerability_targeting=combo.vulnerability_targeting,
                generations=model.generation,
                population=last.population,
                fulfillment_rate=last.fulfillment_rate,
                relational_integrity=last.relational_integrity,
                avg_debt=last.avg_debt,
                avg_conflict=last.avg_conflict,
                emergent_regimes=last.emergent_regimes,
            )
        )
        logger.info(
            "batch run %d/%d scenario=%s repair=%s directed=%s targeting=%s fulfillment=%.2f",
            run, len(sequence), scenario, combo.moral_repair, combo.directed_emergence,
            combo.vulnerability_targeting, last.fulfillment_rate,
        )
    return BatchResult(
        metrics=pd.DataFrame(metric_rows),
        agent_log=pd.DataFrame(agent_rows),
        obligation_log=pd.DataFrame(obligation_rows),
        runs=pd.DataFrame(run_rows),
    )
