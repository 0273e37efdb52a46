# errors.py
class ColorClashError(Exception):
    """Base class for every error the game raises on purpose."""


class InvalidBet(ColorClashError):
    """Non-positive amount, bad value, closed round or insufficient balance."""


class InsufficientFunds(ColorClashError):
    def __init__(self, user_id: str, balance: float, delta: float):
        self.user_id = user_id
        self.balance = balance
        self.delta = delta
        super().__init__(
            f"insufficient funds for {user_id}: balance {balance:.2f}, delta {delta:.2f}"
        )


class SelectionStrategyFailure(ColorClashError):
    """Winner strategy errored, timed out or returned an out-of-range number."""


class SettlementRaceDetected(ColorClashError):
    """Round already has a winner; the caller should treat it as settled."""

    def __init__(self, round_id: str, winning_number: int):
        self.round_id = round_id
        self.winning_number = winning_number
        super().__init__(f"round {round_id} already settled with {winning_number}")


class LedgerUpdateFailure(ColorClashError):
    def __init__(self, message: str, failed: dict = None):
        self.failed = dict(failed or {})
        super().__init__(message)


class DuplicateAccount(ColorClashError):
    pass


class NotFound(ColorClashError):
    pass


class DuplicateRoundResult(ColorClashError):
    pass


class RoundNotReady(ColorClashError):
    """Settlement requested before the round's betting deadline."""
