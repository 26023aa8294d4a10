"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth
  2xxx: Session
  3xxx: Proposal / Vote
  4xxx: Settlement
  5xxx: Group
  9xxx: System

Validation errors (2xxx/3xxx/5xxx) are raised synchronously with no state
change. Settlement errors (4xxx) are pipeline-fatal and caught by the
settlement dispatcher; they only surface in the SettlementSummary.
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Auth ---

class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1001, "Invalid or expired token", 401)


class NotAuthorizedError(AppError):
    def __init__(self, detail: str = "Actor is not authorized for this operation") -> None:
        super().__init__(1002, detail, 403)


# --- 2xxx: Session ---

class SessionNotFoundError(AppError):
    def __init__(self, session_id: str) -> None:
        super().__init__(2001, f"Session not found: {session_id}", 404)


class SessionAlreadyOpenError(AppError):
    def __init__(self, group_id: str) -> None:
        super().__init__(2002, f"A session is already open for group {group_id}", 409)


class SessionClosedError(AppError):
    def __init__(self, session_id: str) -> None:
        super().__init__(2003, f"Session is closed: {session_id}", 422)


class AlreadyJoinedError(AppError):
    def __init__(self, participant_id: str) -> None:
        super().__init__(2004, f"Participant already joined: {participant_id}", 409)


class JoinWindowClosedError(AppError):
    def __init__(self, session_id: str) -> None:
        super().__init__(2005, f"Join window has closed for session {session_id}", 422)


class ConcurrentModificationError(AppError):
    def __init__(self, session_id: str) -> None:
        super().__init__(2006, f"Session {session_id} was modified concurrently", 409)


# --- 3xxx: Proposal / Vote ---

class ProposalNotFoundError(AppError):
    def __init__(self, proposal_id: str) -> None:
        super().__init__(3001, f"Proposal not found: {proposal_id}", 404)


class AlreadyOpenProposalError(AppError):
    def __init__(self, session_id: str) -> None:
        super().__init__(3002, f"Session {session_id} already has an open proposal", 409)


class PreconditionFailedError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3003, f"Precondition failed: {detail}", 422)


class InvalidDurationError(AppError):
    def __init__(self, minutes: int, low: int, high: int) -> None:
        super().__init__(
            3004, f"Voting duration must be between {low} and {high} minutes, got {minutes}", 422
        )


class NotEligibleError(AppError):
    def __init__(self, participant_id: str) -> None:
        super().__init__(3005, f"Participant is not eligible to vote: {participant_id}", 403)


class AlreadyVotedError(AppError):
    def __init__(self, participant_id: str) -> None:
        super().__init__(3006, f"Participant already voted: {participant_id}", 409)


class ProposalClosedError(AppError):
    def __init__(self, proposal_id: str) -> None:
        super().__init__(3007, f"Proposal is closed: {proposal_id}", 422)


class InvalidAmountError(AppError):
    def __init__(self, amount: int, low: int, high: int) -> None:
        super().__init__(
            3008,
            f"Stake must be between {low} and {high} lamports, got {amount}",
            422,
        )


class InsufficientBalanceError(AppError):
    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            3009,
            f"Insufficient balance: required {required} lamports, available {available} lamports",
            422,
        )


# --- 4xxx: Settlement (pipeline-fatal) ---

class SettlementError(AppError):
    """Base for errors that abort a whole settlement step."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(code, message, 502)


class NoFundsCollectedError(SettlementError):
    def __init__(self, failed: int) -> None:
        super().__init__(4001, f"No funds were collected from voters ({failed} failed)")


class RelayTransferFailedError(SettlementError):
    def __init__(self, detail: str) -> None:
        super().__init__(4002, f"Collected funds but transfer to relay failed: {detail}")


class NoRouteFoundError(SettlementError):
    def __init__(self, asset_in: str, asset_out: str) -> None:
        super().__init__(4003, f"No swap route found: {asset_in} -> {asset_out}")


class ExecutionFailedError(SettlementError):
    def __init__(self, detail: str) -> None:
        super().__init__(4004, f"Exchange execution failed: {detail}")


class TransferFailedError(AppError):
    """A single Ledger.transfer failed. Isolated per participant, never fatal alone."""

    def __init__(self, detail: str) -> None:
        super().__init__(4005, f"Transfer failed: {detail}", 502)


class OrderNotFoundError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(4006, f"Order not found: {order_id}", 404)


# --- 5xxx: Group ---

class GroupNotFoundError(AppError):
    def __init__(self, group_id: str) -> None:
        super().__init__(5001, f"Group not found: {group_id}", 404)


class GroupInactiveError(AppError):
    def __init__(self, group_id: str) -> None:
        super().__init__(5002, f"Group is not active: {group_id}", 422)


class ParticipantNotFoundError(AppError):
    def __init__(self, participant_id: str) -> None:
        super().__init__(5003, f"Participant not found: {participant_id}", 404)


# --- 9xxx: System ---

class InvariantViolationError(AppError):
    """Double vote, double settlement, allocation mismatch. A bug, never user-facing."""

    def __init__(self, detail: str) -> None:
        super().__init__(9001, f"Invariant violated: {detail}", 500)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)
