# rounds.py
"""
Round lifecycle.

    Open --(now >= closesAt)--> AwaitingSettlement --(winner recorded)--> Settled
    Settled --(closesAt + POST_ROUND_DELAY)--> Archived --(start_new_round)--> Open

Open -> AwaitingSettlement needs no event: the phase is derived from the
clock every time a round is looked at. Only one round is live at a time;
settled rounds survive as RoundResults in the history store.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from .config import POST_ROUND_DELAY, ROUND_DURATION
from .errors import InsufficientFunds, InvalidBet, NotFound, SettlementRaceDetected
from .game_settings import SettingsStore
from .ledger import Ledger
from .models import Bet, Round, RoundView, check_bet_value
from .state_store import StateStore, now_utc, parse_iso

logger = logging.getLogger("colorclash.rounds")


class RoundManager:
    def __init__(
        self,
        store: StateStore,
        ledger: Ledger,
        settings: SettingsStore,
        clock: Callable[[], datetime] = now_utc,
        round_duration: int = ROUND_DURATION,
        post_round_delay: int = POST_ROUND_DELAY,
    ):
        self.store = store
        self.ledger = ledger
        self.settings = settings
        self.clock = clock
        self.round_duration = round_duration
        self.post_round_delay = post_round_delay

    # ----------------------------
    # Phase helpers
    # ----------------------------
    def phase_of(self, rnd: Round, now: Optional[datetime] = None) -> str:
        now = now or self.clock()
        closes = parse_iso(rnd.closesAt)
        if rnd.winningNumber is None:
            return "Open" if now < closes else "AwaitingSettlement"
        if now < closes + timedelta(seconds=self.post_round_delay):
            return "Settled"
        return "Archived"

    def seconds_left(self, rnd: Round, now: Optional[datetime] = None) -> int:
        """Until betting closes while Open, until the next round while Settled."""
        now = now or self.clock()
        closes = parse_iso(rnd.closesAt)
        phase = self.phase_of(rnd, now)
        if phase == "Open":
            target = closes
        elif phase == "Settled":
            target = closes + timedelta(seconds=self.post_round_delay)
        else:
            return 0
        return max(0, int((target - now).total_seconds() + 0.999))

    # ----------------------------
    # Round records
    # ----------------------------
    def _new_round(self, data: Dict, now: datetime) -> Round:
        rid = int(now.timestamp() * 1000)
        prev = data.get("round")
        if prev and prev["id"].isdigit():
            rid = max(rid, int(prev["id"]) + 1)
        rnd = Round(
            id=str(rid),
            opensAt=now.isoformat(),
            closesAt=(now + timedelta(seconds=self.round_duration)).isoformat(),
        )
        data["round"] = rnd.model_dump()
        return rnd

    def get_round(self, round_id: Optional[str] = None) -> Optional[Round]:
        """The live round record, or None if `round_id` is not the live one."""
        raw = self.store.snapshot().get("round")
        if raw is None or (round_id is not None and raw["id"] != round_id):
            return None
        return Round.model_validate(raw)

    def current_round(self) -> Round:
        """The live round, opening the very first one if none exists yet."""
        raw = self.store.snapshot().get("round")
        if raw is not None:
            return Round.model_validate(raw)
        with self.store.transaction() as data:
            if data.get("round") is None:
                rnd = self._new_round(data, self.clock())
                logger.info("opened first round %s", rnd.id)
                return rnd
            return Round.model_validate(data["round"])

    def start_new_round(self) -> Round:
        """
        Open the next round once the current one is archived. Concurrent
        callers all get the same new round; calling early is a no-op that
        returns the live round. Any manual override is cleared.
        """
        now = self.clock()
        with self.store.transaction() as data:
            raw = data.get("round")
            if raw is not None:
                current = Round.model_validate(raw)
                if self.phase_of(current, now) != "Archived":
                    return current
            self.settings.clear_manual_override()
            rnd = self._new_round(data, now)
        logger.info("opened round %s, betting closes %s", rnd.id, rnd.closesAt)
        return rnd

    def round_view(self, now: Optional[datetime] = None) -> RoundView:
        now = now or self.clock()
        rnd = self.current_round()
        return RoundView(
            roundId=rnd.id,
            phase=self.phase_of(rnd, now),
            opensAt=rnd.opensAt,
            closesAt=rnd.closesAt,
            secondsLeft=self.seconds_left(rnd, now),
            betCount=len(rnd.bets),
            totalStaked=round(sum(b.amount for b in rnd.bets), 2),
            winningNumber=rnd.winningNumber,
        )

    # ----------------------------
    # Bets
    # ----------------------------
    def place_bet(self, user_id: str, bet_type: str, value, amount: float) -> Bet:
        """
        Validate, debit and record a bet as one unit. Any failure leaves both
        the round and the balance untouched.
        """
        try:
            amount = round(float(amount), 2)
        except (TypeError, ValueError):
            raise InvalidBet("amount must be a number")
        if not math.isfinite(amount):
            raise InvalidBet("amount must be a finite number")
        if not amount > 0:
            raise InvalidBet("amount must be positive")
        try:
            check_bet_value(bet_type, value)
        except ValueError as e:
            raise InvalidBet(str(e))

        with self.store.transaction() as data:
            # clock is read under the lock so no bet lands after settlement froze the round
            now = self.clock()
            if data.get("round") is None:
                self._new_round(data, now)
            rnd = Round.model_validate(data["round"])
            if self.phase_of(rnd, now) != "Open":
                raise InvalidBet(f"betting is closed for round {rnd.id}")

            bet = Bet(type=bet_type, value=value, amount=amount, userId=user_id, placedAt=now.isoformat())
            try:
                self.ledger.adjust_balance(user_id, -amount)
            except InsufficientFunds:
                raise InvalidBet("insufficient balance")
            data["round"]["bets"].append(bet.model_dump())

        logger.debug("round %s: %s bet %s on %s by %s", rnd.id, bet_type, amount, value, user_id)
        return bet

    # ----------------------------
    # Settlement hook
    # ----------------------------
    def claim_winner(self, round_id: str, winning_number: int) -> Round:
        """
        Conditional write: record `winning_number` only if the round has none.
        Raises SettlementRaceDetected when someone else got there first.
        """
        now = self.clock()
        with self.store.transaction() as data:
            raw = data.get("round")
            if raw is None or raw["id"] != round_id:
                raise NotFound(f"round {round_id} is not the live round")
            if raw.get("winningNumber") is not None:
                raise SettlementRaceDetected(round_id, raw["winningNumber"])
            raw["winningNumber"] = int(winning_number)
            raw["settledAt"] = now.isoformat()
            return Round.model_validate(raw)
