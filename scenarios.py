"""Scenario presets that assign initial acknowledgment patterns.

Each preset is ``apply(agent) -> None`` and may also change the agent's
preferred norm. Randomness comes from ``agent.model.rng``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Dict, Tuple

if TYPE_CHECKING:
    from model import MoralAgent

ScenarioFn = Callable[["MoralAgent"], None]


def _set_all(agent: "MoralAgent", assign) -> None:
    for norm in agent.model.registry.names():
        agent.acknowledgments[norm] = bool(assign(norm) if callable(assign) else assign)


def _random_norm(agent: "MoralAgent", exclude: str | None = None) -> str:
    names = [n for n in agent.model.registry.names() if n != exclude] or agent.model.registry.names()
    return str(agent.model.rng.choice(names))


def pluralist(agent: "MoralAgent") -> None:
    rng = agent.model.rng
    _set_all(agent, lambda norm: rng.random() > 0.5)


def authoritarian(agent: "MoralAgent") -> None:
    _set_all(agent, lambda norm: norm == "legal")


def utopian(agent: "MoralAgent") -> None:
    _set_all(agent, True)


def collapsed(agent: "MoralAgent") -> None:
    _set_all(agent, False)


def anomic(agent: "MoralAgent") -> None:
    rng = agent.model.rng
    _set_all(agent, lambda norm: rng.random() > 0.1)


def all_care(agent: "MoralAgent") -> None:
    _set_all(agent, lambda norm: norm == "care")
    agent.norm_preference = "care"


def all_legal(agent: "MoralAgent") -> None:
    _set_all(agent, lambda norm: norm == "legal")
    agent.norm_preference = "legal"


def no_apriori(agent: "MoralAgent") -> None:
    _set_all(agent, lambda norm: norm != "apriori")
    if agent.norm_preference == "apriori":
        agent.norm_preference = _random_norm(agent, exclude="apriori")


def asymmetry_only(agent: "MoralAgent") -> None:
    """Half the agents acknowledge a single random norm and prefer it; the rest acknowledge none."""
    _set_all(agent, False)
    if agent.model.rng.random() < 0.5:
        norm = _random_norm(agent)
        agent.acknowledgments[norm] = True
        agent.norm_preference = norm
    else:
        agent.norm_preference = _random_norm(agent)


def genocide_shock(agent: "MoralAgent") -> None:
    _set_all(agent, False)
    agent.norm_preference = _random_norm(agent)


SCENARIOS: Dict[str, ScenarioFn] = {
    "pluralist": pluralist,
    "authoritarian": authoritarian,
    "utopian": utopian,
    "collapsed": collapsed,
    "anomic": anomic,
    "allCare": all_care,
    "allLegal": all_legal,
    "noApriori": no_apriori,
    "asymmetryOnly": asymmetry_only,
    "genocideShock": genocide_shock,
}

SCENARIO_NAMES: Tuple[str, ...] = tuple(SCENARIOS)
