import argparse
import logging
import os

import pandas as pd

from batch import run_batch
from metrics import interpretive_summary
from model import ObligationModel
from scenarios import SCENARIO_NAMES
from sim_config import ConfigError, SimulationConfig


parser = argparse.ArgumentParser(description="Relational obligation simulation")
parser.add_argument("--generations", type=int, default=None)
parser.add_argument("--seed", type=int, default=42)
parser.add_argument("--scenario", type=str, choices=list(SCENARIO_NAMES), default="pluralist")
parser.add_argument("--population", type=int, default=100)
parser.add_argument("--interval", type=int, default=100, help="steps per generation")
parser.add_argument("--norms", type=str, default=None, help="comma separated norm names")
parser.add_argument("--policy", type=str, choices=["threshold", "probabilistic"], default="threshold")

parser.add_argument("--norepair", action="store_true", default=False)
parser.add_argument("--directedemergence", action="store_true", default=False)
parser.add_argument("--vulnerabilitytargeting", action="store_true", default=False)
parser.add_argument("--awaitarrival", action="store_true", default=False)

parser.add_argument("--batch", type=int, default=0, help="repetitions of every scenario x toggle combination")
parser.add_argument("--out", type=str, default="results")


def build_config(args) -> SimulationConfig:
    raw = {
        "population_size": args.population,
        "generation_interval": args.interval,
        "scenario": args.scenario,
        "enforcement": {"default_policy": args.policy},
        "obligation": {"await_arrival": args.awaitarrival},
        "toggles": {
            "moral_repair": not args.norepair,
            "directed_emergence": args.directedemergence,
            "vulnerability_targeting": args.vulnerabilitytargeting,
        },
    }
    if args.norms:
        raw["norm_types"] = args.norms
    if args.generations is not None:
        raw["max_generations"] = args.generations
    return SimulationConfig.from_mapping(raw)


def write_frame(df: pd.DataFrame, path: str) -> None:
    if df.empty:
        return
    df.to_csv(path, index=False)
    print(f"  {path} ({len(df)} rows)")


def run_single(config: SimulationConfig, seed: int, out: str) -> None:
    model = ObligationModel(config=config, seed=seed)
    print(f"Starting simulation: scenario={config.scenario} agents={config.population_size}")
    while model.running and model.generation < config.max_generations:
        model.run_generations(1)
        if model.generation % 10 == 0:
            last = model.metrics_log[-1]
            print(
                f"Gen {model.generation:4d} | population={last.population:5d} "
                f"fulfillment={last.fulfillment_rate:.2f} "
                f"integrity={last.relational_integrity:.2f} "
                f"regimes={last.emergent_regimes}"
            )

    print("\n" + "=" * 30 + " INTERPRETIVE SUMMARY " + "=" * 30)
    print(interpretive_summary(model))
    if model.falsify_flags:
        print(f"\nAcknowledgment changes flagged: {len(model.falsify_flags)}")
        for flag in model.falsify_flags[-5:]:
            print(f"  {flag}")
    if not model.agent_by_id:
        print("The population has died out.")

    os.makedirs(out, exist_ok=True)
    metrics = model.metrics_frame()
    rate_cols = [c for c in metrics.columns if c.endswith("rate")]
    for col in rate_cols:
        metrics[col] = metrics[col].clip(lower=0.0, upper=1.0)
    print("\nWriting results:")
    write_frame(metrics, os.path.join(out, "generation_metrics.csv"))
    write_frame(pd.DataFrame(model.agent_log), os.path.join(out, "agent_log.csv"))
    write_frame(pd.DataFrame(model.obligation_log), os.path.join(out, "obligation_log.csv"))


def run_batch_mode(config: SimulationConfig, repetitions: int, seed: int, out: str) -> None:
    result = run_batch(repetitions, config.max_generations, base_config=config, seed=seed)
    print("\n" + "=" * 30 + " BATCH REPORT " + "=" * 30)
    if not result.runs.empty:
        grouped = result.runs.groupby("batch_scenario")[["fulfillment_rate", "relational_integrity", "avg_conflict"]]
        print(grouped.mean().round(3).to_string())
    os.makedirs(out, exist_ok=True)
    print("\nWriting results:")
    write_frame(result.runs, os.path.join(out, "batch_runs.csv"))
    write_frame(result.metrics, os.path.join(out, "batch_metrics.csv"))
    write_frame(result.agent_log, os.path.join(out, "batch_agent_log.csv"))
    write_frame(result.obligation_log, os.path.join(out, "batch_obligation_log.csv"))


def main() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    args, unknown = parser.parse_known_args()
    try:
        config = build_config(args)
    except ConfigError as exc:
        parser.error(str(exc))
    if args.batch > 0:
        run_batch_mode(config, args.batch, args.seed, args.out)
    else:
        run_single(config, args.seed, args.out)


if __name__ == "__main__":
    main()
