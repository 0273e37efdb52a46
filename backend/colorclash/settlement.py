# settlement.py
import logging
import random
from collections import defaultdict
from typing import Dict, Optional

from .errors import LedgerUpdateFailure, NotFound, RoundNotReady, SettlementRaceDetected
from .game_logic import payout
from .game_settings import SettingsStore
from .history import HistoryStore
from .ledger import Ledger
from .models import RoundResult
from .rounds import RoundManager
from .services.winner_strategy import WinnerStrategy, select_winner_with_source
from .state_store import StateStore

logger = logging.getLogger("colorclash.settlement")


class SettlementEngine:
    """
    Settles a round exactly once.

    The winner is chosen outside the store lock (a remote strategy may take
    up to its timeout). Everything that mutates state (recording the
    winner, crediting balances, appending history, consuming the override)
    then commits in a single transaction that starts with a conditional
    write on the round's winning number. A second settler loses that write,
    rolls back, and gets the first settler's result.
    """

    def __init__(
        self,
        store: StateStore,
        rounds: RoundManager,
        ledger: Ledger,
        history: HistoryStore,
        settings: SettingsStore,
        strategy: Optional[WinnerStrategy] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.rounds = rounds
        self.ledger = ledger
        self.history = history
        self.settings = settings
        self.strategy = strategy
        self.rng = rng

    def _existing_result(self, round_id: str) -> RoundResult:
        result = self.history.get(round_id)
        if result is None:
            raise NotFound(f"round {round_id} has a winner but no recorded result")
        return result

    def settle(self, round_id: str) -> RoundResult:
        rnd = self.rounds.get_round(round_id)
        if rnd is None:
            # no longer live: already settled and archived, or never existed
            return self._existing_result(round_id)
        if rnd.winningNumber is not None:
            logger.info("round %s already settled with %d, skipping", round_id, rnd.winningNumber)
            return self._existing_result(round_id)
        if self.rounds.phase_of(rnd) == "Open":
            raise RoundNotReady(f"round {round_id} is still accepting bets")

        # bets are frozen: place_bet rejects everything past closesAt
        settings = self.settings.get()
        winning_number, source = select_winner_with_source(
            rnd.bets,
            settings.difficulty,
            override=settings.manual_override(),
            strategy=self.strategy,
            rng=self.rng,
        )

        try:
            with self.store.transaction():
                claimed = self.rounds.claim_winner(round_id, winning_number)
                # pay from the bet list as it stands under the lock
                if len(claimed.bets) != len(rnd.bets):
                    logger.warning(
                        "round %s gained %d bet(s) during winner selection",
                        round_id, len(claimed.bets) - len(rnd.bets),
                    )
                bets = [
                    b.model_copy(update={"payout": round(payout(b, winning_number), 2)})
                    for b in claimed.bets
                ]
                credits: Dict[str, float] = defaultdict(float)
                for b in bets:
                    if b.payout > 0:
                        credits[b.userId] += b.payout

                result = RoundResult(
                    roundId=round_id,
                    winningNumber=winning_number,
                    bets=bets,
                    totalPayout=round(sum(b.payout for b in bets), 2),
                    totalStake=round(sum(b.amount for b in bets), 2),
                    selectionSource=source,
                    settledAt=claimed.settledAt,
                )
                try:
                    self.ledger.credit_many(dict(credits), round_id)
                except LedgerUpdateFailure as e:
                    # the winner and history stay authoritative; parked credits await reconcile()
                    logger.error("round %s settled with unpaid credits %s: %s", round_id, e.failed, e)
                self.history.append(result)
                if settings.manual_override() is not None:
                    self.settings.clear_manual_override()
        except SettlementRaceDetected as e:
            logger.info("settlement race on round %s, keeping winner %d", round_id, e.winning_number)
            return self._existing_result(round_id)

        logger.info(
            "round %s settled: winner %d (%s), %d bets, staked %.2f, paid %.2f",
            round_id, winning_number, source, len(bets), result.totalStake, result.totalPayout,
        )
        return result
