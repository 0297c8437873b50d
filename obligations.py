"""Directed obligations between agents and their lifecycle."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Dict, FrozenSet

if TYPE_CHECKING:
    from model import MoralAgent
    from norms import EnforcementContext


class ObligationStatus(str, Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    DENIED = "denied"
    EXPIRED = "expired"
    REPAIRED = "repaired"


FAILED_STATUSES: FrozenSet[ObligationStatus] = frozenset(
    {ObligationStatus.DENIED, ObligationStatus.EXPIRED}
)

LEGAL_TRANSITIONS: Dict[ObligationStatus, FrozenSet[ObligationStatus]] = {
    ObligationStatus.PENDING: frozenset(
        {ObligationStatus.FULFILLED, ObligationStatus.DENIED, ObligationStatus.EXPIRED}
    ),
    ObligationStatus.FULFILLED: frozenset(),
    ObligationStatus.DENIED: frozenset({ObligationStatus.REPAIRED}),
    ObligationStatus.EXPIRED: frozenset({ObligationStatus.REPAIRED}),
    ObligationStatus.REPAIRED: frozenset(),
}


class InvalidTransition(ValueError):
    pass


def can_transition(current: ObligationStatus, new: ObligationStatus) -> bool:
    return new in LEGAL_TRANSITIONS[current]


class ObligationVector:
    """One directed obligation from ``source`` to ``target`` under a norm.

    The vector holds non-owning references to both agents. It ages once per
    enforcement step while pending and expires once ``age`` reaches
    ``expiration``. A gated vector waits for ``signal_ready()`` before its
    policy may fulfil or deny it, but it keeps ageing and can still expire.
    """

    def __init__(
        self,
        source: "MoralAgent",
        target: "MoralAgent",
        strength: float,
        norm_type: str,
        expiration: int,
        generation: int = 0,
        gated: bool = False,
    ):
        self.source = source
        self.target = target
        self.strength = float(strength)
        self.norm_type = norm_type
        self.expiration = int(expiration)
        self.generation = generation
        self.gated = gated
        self.ready = not gated
        self.age = 0
        self.status = ObligationStatus.PENDING

    def __repr__(self) -> str:
        return (
            f"ObligationVector({self.source.unique_id}->{self.target.unique_id}, "
            f"norm={self.norm_type}, status={self.status.value}, age={self.age}/{self.expiration})"
        )

    @property
    def pending(self) -> bool:
        return self.status is ObligationStatus.PENDING

    @property
    def expired_by_age(self) -> bool:
        return self.age >= self.expiration

    def signal_ready(self) -> None:
        self.ready = True

    def transition(self, new: ObligationStatus) -> None:
        if not can_transition(self.status, new):
            raise InvalidTransition(f"{self.status.value} -> {new.value} is not a legal transition")
        self.status = new

    def enforce(self, ctx: "EnforcementContext") -> ObligationStatus:
        """Run one enforcement step; terminal vectors are left untouched."""
        if not self.pending:
            return self.status
        if not self.ready:
            if self.expired_by_age:
                return self.settle(ObligationStatus.EXPIRED, ctx, overwrite=False)
            self.age += 1
            return self.status
        return ctx.registry.enforce(self, ctx)

    def settle(self, outcome: ObligationStatus, ctx: "EnforcementContext", overwrite: bool) -> ObligationStatus:
        """Resolve the vector and apply ledger, counter, trust and log effects.

        Counters and trust move on every resolution. With ``overwrite`` False
        the source's ledger entry for the target is only written when absent,
        so a failure is recorded and logged once per pair.
        """
        self.transition(outcome)
        source, target = self.source, self.target
        source.obligation_attempts += 1
        fulfilled = outcome is ObligationStatus.FULFILLED
        if fulfilled:
            source.obligation_successes += 1
        source.record_trust(target.unique_id, fulfilled, ctx.config.trust)
        target.record_trust(source.unique_id, fulfilled, ctx.config.trust)
        if not overwrite and target.unique_id in source.relational_ledger:
            return outcome
        source.relational_ledger[target.unique_id] = outcome
        ctx.obligation_log.append(
            {
                "generation": ctx.generation,
                "from": source.unique_id,
                "to": target.unique_id,
                "norm": self.norm_type,
                "status": outcome.value,
            }
        )
        return outcome
