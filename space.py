"""Spatial collaborator: positions, distance and a minimal pull-toward-target motion."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Iterable

from mesa.space import ContinuousSpace

from obligations import ObligationVector

if TYPE_CHECKING:
    from model import MoralAgent, ObligationModel


class SpatialField:
    """Wraps a toroidal ``ContinuousSpace``.

    Only ``distance`` is consumed by enforcement and sampling. ``advance``
    nudges obligation sources toward their targets and raises the arrival
    signal on gated vectors once the pair is within reach.
    """

    def __init__(self, model: "ObligationModel"):
        self.model = model
        cfg = model.config
        self.width = cfg.world_width
        self.height = cfg.world_height
        self.space = ContinuousSpace(cfg.world_width, cfg.world_height, torus=True)

    def place(self, agent: "MoralAgent") -> None:
        rng = self.model.rng
        pos = (float(rng.uniform(0, self.width)), float(rng.uniform(0, self.height)))
        self.space.place_agent(agent, pos)

    def remove(self, agent: "MoralAgent") -> None:
        if agent.pos is not None:
            self.space.remove_agent(agent)

    def distance(self, a: "MoralAgent", b: "MoralAgent") -> float:
        if a.pos is None or b.pos is None:
            return math.inf
        return float(self.space.get_distance(a.pos, b.pos))

    def advance(self, vectors: Iterable[ObligationVector]) -> None:
        cfg = self.model.config
        rng = self.model.rng
        threshold = cfg.obligation.proximity_threshold
        pulled = set()
        for vec in vectors:
            if not vec.pending or vec.source.pos is None or vec.target.pos is None:
                continue
            heading = self.space.get_heading(vec.source.pos, vec.target.pos)
            length = math.hypot(heading[0], heading[1])
            if length > 0:
                step = cfg.motion_speed * vec.strength / length
                self._move(vec.source, heading[0] * step, heading[1] * step)
                pulled.add(vec.source.unique_id)
            if not vec.ready and self.model.distance(vec.source, vec.target) < threshold:
                vec.signal_ready()
        for agent in self.model.population():
            if agent.unique_id in pulled or agent.pos is None:
                continue
            angle = float(rng.uniform(0, 2 * math.pi))
            wander = cfg.motion_speed * 0.25
            self._move(agent, math.cos(angle) * wander, math.sin(angle) * wander)

    def _move(self, agent: "MoralAgent", dx: float, dy: float) -> None:
        x, y = agent.pos
        self.space.move_agent(agent, (x + dx, y + dy))
