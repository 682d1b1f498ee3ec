"""Interactive reconciliation of drifted links.

The controller is an explicit state machine. :func:`transition` is pure: it
maps the presented state and the user's decision to the next state and the
effect to apply. :class:`ReconciliationSession` applies effects through the
store, persisting each one immediately, and talks to the user only through a
:class:`ReconciliationIO` implementation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol, Sequence, TypeAlias

from doksnet.exceptions import DoksnetError
from doksnet.invariants import never
from doksnet.store import EditRequest, LinkStore
from doksnet.verify import VerificationResult, verify_record


class Decision(StrEnum):
    ACCEPT = "accept"
    EDIT = "edit"
    REMOVE = "remove"
    SKIP = "skip"


DECISION_LABELS: dict[Decision, str] = {
    Decision.ACCEPT: "Update hashes (accept current content)",
    Decision.EDIT: "Edit this mapping",
    Decision.REMOVE: "Remove this mapping",
    Decision.SKIP: "Skip (leave as-is)",
}


@dataclass(frozen=True)
class Presenting:
    index: int


@dataclass(frozen=True)
class Done:
    pass


ControllerState: TypeAlias = Presenting | Done


class EffectKind(StrEnum):
    ACCEPT = "accept"
    EDIT = "edit"
    REMOVE = "remove"
    NONE = "none"


@dataclass(frozen=True)
class Effect:
    kind: EffectKind
    record_id: str

    @property
    def mutates(self) -> bool:
        return self.kind is not EffectKind.NONE


_EFFECT_BY_DECISION: dict[Decision, EffectKind] = {
    Decision.ACCEPT: EffectKind.ACCEPT,
    Decision.EDIT: EffectKind.EDIT,
    Decision.REMOVE: EffectKind.REMOVE,
    Decision.SKIP: EffectKind.NONE,
}


def initial_state(results: Sequence[VerificationResult]) -> ControllerState:
    return Presenting(0) if results else Done()


def transition(
    state: ControllerState,
    decision: Decision,
    results: Sequence[VerificationResult],
) -> tuple[ControllerState, Effect]:
    if not isinstance(state, Presenting):
        never("decision received after reconciliation finished", decision=decision)
    if not 0 <= state.index < len(results):
        never("presented index out of range", index=state.index, total=len(results))
    kind = _EFFECT_BY_DECISION.get(decision)
    if kind is None:
        never("unknown reconciliation decision", decision=decision)
    next_index = state.index + 1
    next_state: ControllerState = (
        Presenting(next_index) if next_index < len(results) else Done()
    )
    return next_state, Effect(kind=kind, record_id=results[state.index].record_id)


@dataclass(frozen=True)
class Outcome:
    record_id: str
    decision: Decision
    applied: bool
    error: str | None = None
    reverified: VerificationResult | None = None


@dataclass
class ReconciliationReport:
    outcomes: list[Outcome] = field(default_factory=list)

    def count(self, decision: Decision) -> int:
        return sum(
            1
            for outcome in self.outcomes
            if outcome.applied and outcome.decision is decision
        )

    @property
    def modified(self) -> bool:
        return any(
            outcome.applied and outcome.decision is not Decision.SKIP
            for outcome in self.outcomes
        )


class ReconciliationIO(Protocol):
    def present(self, result: VerificationResult, position: int, total: int) -> None: ...

    def decide(self, result: VerificationResult) -> Decision: ...

    def request_edit(self, result: VerificationResult) -> EditRequest | None: ...

    def confirm_remove(self, result: VerificationResult) -> bool: ...

    def report(self, outcome: Outcome) -> None: ...


class ReconciliationSession:
    def __init__(
        self,
        store: LinkStore,
        results: Sequence[VerificationResult],
        io: ReconciliationIO,
    ) -> None:
        self.store = store
        self.results = [result for result in results if not result.passed]
        self.io = io
        self.state: ControllerState = initial_state(self.results)

    def _apply(self, effect: Effect, decision: Decision, result: VerificationResult) -> Outcome:
        if effect.kind is EffectKind.NONE:
            return Outcome(record_id=effect.record_id, decision=decision, applied=True)
        if effect.kind is EffectKind.ACCEPT:
            self.store.accept(effect.record_id)
            return Outcome(record_id=effect.record_id, decision=decision, applied=True)
        if effect.kind is EffectKind.REMOVE:
            if not self.io.confirm_remove(result):
                return Outcome(record_id=effect.record_id, decision=decision, applied=False)
            self.store.remove(effect.record_id)
            return Outcome(record_id=effect.record_id, decision=decision, applied=True)
        if effect.kind is EffectKind.EDIT:
            request = self.io.request_edit(result)
            if request is None or request.is_empty:
                return Outcome(record_id=effect.record_id, decision=decision, applied=False)
            updated = self.store.edit(effect.record_id, request)
            return Outcome(
                record_id=effect.record_id,
                decision=decision,
                applied=True,
                reverified=verify_record(updated, self.store.root),
            )
        never("unhandled reconciliation effect", kind=effect.kind)

    def step(self) -> Outcome:
        if not isinstance(self.state, Presenting):
            never("step called after reconciliation finished")
        result = self.results[self.state.index]
        self.io.present(result, self.state.index + 1, len(self.results))
        decision = self.io.decide(result)
        next_state, effect = transition(self.state, decision, self.results)
        try:
            outcome = self._apply(effect, decision, result)
        except DoksnetError as exc:
            outcome = Outcome(
                record_id=effect.record_id,
                decision=decision,
                applied=False,
                error=str(exc),
            )
        if outcome.applied:
            self.state = next_state
        self.io.report(outcome)
        return outcome

    def run(self) -> ReconciliationReport:
        report = ReconciliationReport()
        while isinstance(self.state, Presenting):
            report.outcomes.append(self.step())
        return report
