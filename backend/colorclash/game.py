# game.py
import pathlib
import random
from datetime import datetime
from typing import Callable, Optional

from .config import POST_ROUND_DELAY, ROUND_DURATION
from .game_settings import SettingsStore
from .history import HistoryStore
from .ledger import Ledger
from .models import RoundView
from .rounds import RoundManager
from .services.winner_strategy import WinnerStrategy, default_strategy
from .settlement import SettlementEngine
from .state_store import StateStore, now_utc


class ColorClashGame:
    """Wires the stores, the round state machine and settlement together."""

    def __init__(
        self,
        path: Optional[pathlib.Path] = None,
        clock: Callable[[], datetime] = now_utc,
        strategy: Optional[WinnerStrategy] = None,
        rng: Optional[random.Random] = None,
        round_duration: int = ROUND_DURATION,
        post_round_delay: int = POST_ROUND_DELAY,
    ):
        self.store = StateStore(path)
        self.ledger = Ledger(self.store)
        self.history = HistoryStore(self.store)
        self.settings = SettingsStore(self.store)
        self.rounds = RoundManager(
            self.store, self.ledger, self.settings,
            clock=clock, round_duration=round_duration, post_round_delay=post_round_delay,
        )
        self.settlement = SettlementEngine(
            self.store, self.rounds, self.ledger, self.history, self.settings,
            strategy=strategy or default_strategy(rng), rng=rng,
        )

    def tick(self) -> RoundView:
        """
        One step of the authoritative round timer: settle a round whose
        deadline passed, open the next one once the cooldown is over.
        Safe to call from any number of places at once.
        """
        rnd = self.rounds.current_round()
        phase = self.rounds.phase_of(rnd)
        if phase == "AwaitingSettlement":
            self.settlement.settle(rnd.id)
        elif phase == "Archived":
            self.rounds.start_new_round()
        return self.rounds.round_view()
