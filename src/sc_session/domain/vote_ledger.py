"""VoteLedger — one immutable vote per participant per proposal.

Pure data structure, no I/O. Arrival order is preserved for display; the
tally itself is order-independent.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime

from src.sc_common.enums import VoteChoice
from src.sc_common.errors import AlreadyVotedError


@dataclass(frozen=True)
class Vote:
    choice: VoteChoice
    amount: int = 0  # lamports; BUY YES stake, 0 otherwise
    cast_at: datetime | None = None


@dataclass(frozen=True)
class Tally:
    yes: int
    no: int
    abstained: int
    yes_amount: int  # lamports committed by YES voters

    @property
    def total(self) -> int:
        return self.yes + self.no


class VoteLedger:
    def __init__(self, votes: Iterable[tuple[str, Vote]] = ()) -> None:
        self._votes: dict[str, Vote] = {}
        for participant_id, vote in votes:
            self.record(participant_id, vote)

    def record(self, participant_id: str, vote: Vote) -> None:
        if participant_id in self._votes:
            raise AlreadyVotedError(participant_id)
        self._votes[participant_id] = vote

    def get(self, participant_id: str) -> Vote | None:
        return self._votes.get(participant_id)

    def has_voted(self, participant_id: str) -> bool:
        return participant_id in self._votes

    def items(self) -> list[tuple[str, Vote]]:
        return list(self._votes.items())

    def yes_votes(self) -> list[tuple[str, int]]:
        """(participant_id, amount) for every YES vote, in arrival order."""
        return [
            (pid, v.amount) for pid, v in self._votes.items() if v.choice == VoteChoice.YES
        ]

    def tally(self, eligible: Iterable[str]) -> Tally:
        yes = no = yes_amount = 0
        for vote in self._votes.values():
            if vote.choice == VoteChoice.YES:
                yes += 1
                yes_amount += vote.amount
            else:
                no += 1
        eligible_count = len(set(eligible))
        return Tally(yes=yes, no=no, abstained=max(eligible_count - yes - no, 0), yes_amount=yes_amount)

    def clear(self) -> None:
        self._votes.clear()

    def __len__(self) -> int:
        return len(self._votes)

    def __iter__(self) -> Iterator[str]:
        return iter(self._votes)

    def __contains__(self, participant_id: object) -> bool:
        return participant_id in self._votes
