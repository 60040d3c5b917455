"""Secret Santa draw engine.

A draw is a single cycle over every participant: following "who gives to whom"
from anyone visits the whole group before coming back. Exclusion rules are
directed (giver must not give to receiver).

The search is randomised backtracking with restarts. It is a heuristic: when it
reports ``NO_VALID_CYCLE`` the rules are most likely too strict, but that is
not a proof that no cycle exists.

Each attempt also stops after ``MAX_STEPS_PER_ATTEMPT`` extensions, so a single
attempt is not an exhaustive search either. Small groups are unaffected, but on
large groups where every giver has only a few allowed receivers a valid cycle
can be missed by all attempts. Raise ``max_steps`` for such rosters.
"""
from __future__ import annotations

import enum
import random
from collections import abc
from dataclasses import dataclass, field
from typing import Dict, Hashable, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

ParticipantId = Hashable
Pair = Tuple[ParticipantId, ParticipantId]
Exclusions = Union[Mapping[ParticipantId, Iterable[ParticipantId]], Iterable[Pair]]

MAX_ATTEMPTS = 100
MAX_STEPS_PER_ATTEMPT = 20_000


class DrawFailure(str, enum.Enum):
    INSUFFICIENT_PARTICIPANTS = "insufficient_participants"
    NO_VALID_CYCLE = "no_valid_cycle"
    MALFORMED_EXCLUSION = "malformed_exclusion"


@dataclass(frozen=True)
class Feasibility:
    possible: bool
    failure: Optional[DrawFailure] = None
    blocked_participant: Optional[ParticipantId] = None
    message: str = ""


@dataclass(frozen=True)
class DrawResult:
    pairs: List[Pair] = field(default_factory=list)
    failure: Optional[DrawFailure] = None
    blocked_participant: Optional[ParticipantId] = None
    message: str = ""
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.failure is None

    def as_mapping(self) -> Dict[ParticipantId, ParticipantId]:
        return dict(self.pairs)


def normalize_exclusions(exclusions: Optional[Exclusions]) -> Dict[ParticipantId, Set[ParticipantId]]:
    """Accept either ``{giver: {receivers}}`` or an iterable of ``(giver, receiver)`` pairs."""
    result: Dict[ParticipantId, Set[ParticipantId]] = {}
    if not exclusions:
        return result
    if isinstance(exclusions, abc.Mapping):
        for giver, receivers in exclusions.items():
            result.setdefault(giver, set()).update(receivers or ())
        return result
    for item in exclusions:
        try:
            giver, receiver = item
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Malformed exclusion rule: {item!r}") from exc
        result.setdefault(giver, set()).add(receiver)
    return result


def _unique(participants: Sequence[ParticipantId]) -> List[ParticipantId]:
    return list(dict.fromkeys(participants))


def _eligible_receivers(
    participants: List[ParticipantId],
    exclusions: Dict[ParticipantId, Set[ParticipantId]],
) -> Dict[ParticipantId, List[ParticipantId]]:
    return {
        giver: [
            receiver
            for receiver in participants
            if receiver != giver and receiver not in exclusions.get(giver, ())
        ]
        for giver in participants
    }


def _check(participants: List[ParticipantId], eligible: Dict[ParticipantId, List[ParticipantId]]) -> Feasibility:
    if len(participants) < 2:
        return Feasibility(
            possible=False,
            failure=DrawFailure.INSUFFICIENT_PARTICIPANTS,
            message="At least 2 participants are required for a draw.",
        )

    for giver in participants:
        if not eligible[giver]:
            return Feasibility(
                possible=False,
                failure=DrawFailure.NO_VALID_CYCLE,
                blocked_participant=giver,
                message=f"{giver} has no possible receiver.",
            )

    receivable = {receiver for receivers in eligible.values() for receiver in receivers}
    for receiver in participants:
        if receiver not in receivable:
            return Feasibility(
                possible=False,
                failure=DrawFailure.NO_VALID_CYCLE,
                blocked_participant=receiver,
                message=f"Nobody is allowed to give to {receiver}.",
            )

    return Feasibility(possible=True)


def can_perform_draw(
    participants: Sequence[ParticipantId],
    exclusions: Optional[Exclusions] = None,
) -> Feasibility:
    """Cheap necessary check; a positive answer does not guarantee a draw."""
    roster = _unique(participants)
    eligible = _eligible_receivers(roster, normalize_exclusions(exclusions))
    return _check(roster, eligible)


def _build_cycle(
    order: List[ParticipantId],
    eligible: Dict[ParticipantId, List[ParticipantId]],
    rng: random.Random,
    max_steps: int,
) -> Optional[List[ParticipantId]]:
    size = len(order)
    start = order[0]
    closing = {giver: set(receivers) for giver, receivers in eligible.items()}
    cycle = [start]
    used = {start}
    steps = 0

    def backtrack() -> bool:
        nonlocal steps
        if len(cycle) == size:
            return start in closing[cycle[-1]]
        if steps >= max_steps:
            return False
        steps += 1

        choices = [receiver for receiver in eligible[cycle[-1]] if receiver not in used]
        rng.shuffle(choices)
        for receiver in choices:
            cycle.append(receiver)
            used.add(receiver)
            if backtrack():
                return True
            cycle.pop()
            used.remove(receiver)
            if steps >= max_steps:
                return False
        return False

    return cycle if backtrack() else None


def perform_draw(
    participants: Sequence[ParticipantId],
    exclusions: Optional[Exclusions] = None,
    seed: Optional[int] = None,
    max_attempts: int = MAX_ATTEMPTS,
    max_steps: int = MAX_STEPS_PER_ATTEMPT,
) -> DrawResult:
    """Draw a single gift cycle over ``participants``.

    Failures come back as a ``DrawResult`` with ``failure`` set, never as an
    exception. ``seed`` exists for reproducible tests; production callers leave
    it unset so that every draw uses fresh randomness.
    """
    roster = _unique(participants)
    try:
        excluded = normalize_exclusions(exclusions)
    except ValueError as exc:
        return DrawResult(failure=DrawFailure.MALFORMED_EXCLUSION, message=str(exc))
    eligible = _eligible_receivers(roster, excluded)

    feasibility = _check(roster, eligible)
    if not feasibility.possible:
        return DrawResult(
            failure=feasibility.failure,
            blocked_participant=feasibility.blocked_participant,
            message=feasibility.message,
        )

    rng = random.Random(seed)
    order = list(roster)
    for attempt in range(1, max_attempts + 1):
        rng.shuffle(order)
        cycle = _build_cycle(order, eligible, rng, max_steps)
        if cycle is not None:
            size = len(cycle)
            pairs = [(cycle[index], cycle[(index + 1) % size]) for index in range(size)]
            return DrawResult(
                pairs=pairs,
                message=f"Draw completed for {size} participants.",
                attempts=attempt,
            )

    return DrawResult(
        failure=DrawFailure.NO_VALID_CYCLE,
        message=(
            "Could not find a valid draw with the current exclusion rules. "
            "There may be too many exclusions."
        ),
        attempts=max_attempts,
    )
