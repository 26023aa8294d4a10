"""Domain models for sc_group — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field


@dataclass
class Group:
    id: str
    name: str
    owner_id: str
    pool_address: str     # receives BUY stakes
    relay_address: str    # executes swaps
    wallet_address: str   # holds tokens, pays out SELL proceeds
    admin_ids: list[str] = field(default_factory=list)
    is_active: bool = True
    total_pnl: int = 0    # lamports, recomputed after every SELL

    def can_manage(self, participant_id: str) -> bool:
        """Owner or admin: may open and close sessions, deactivate the group."""
        return participant_id == self.owner_id or participant_id in self.admin_ids


@dataclass
class ParticipantWallet:
    participant_id: str
    wallet_address: str
    total_pnl: int = 0    # lamports, lifetime sum of SOLD allocation P&L
