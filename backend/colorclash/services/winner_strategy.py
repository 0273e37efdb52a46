# winner_strategy.py
"""
Picks the winning number for a round.

Local strategies reduce each difficulty to a choice over the ten candidate
numbers and their projected payouts. `RemoteWinnerStrategy` asks an external
scoring endpoint instead. Whatever does the deciding is wrapped in
`FallbackStrategy`, so a failing or misbehaving strategy degrades to a
uniform random pick and never stalls settlement.
"""
import logging
import random
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Dict, Iterable, Optional, Tuple, Union

import requests

from ..config import WINNER_STRATEGY_API_KEY, WINNER_STRATEGY_TIMEOUT, WINNER_STRATEGY_URL
from ..errors import SelectionStrategyFailure
from ..game_logic import NUMBERS, numbers_matching, payouts_by_number
from ..models import COLORS, SIZES, Bet

logger = logging.getLogger("colorclash.strategy")

RNG = random.SystemRandom()

# remote calls run here so the caller can stop waiting at the deadline
_REMOTE_POOL = ThreadPoolExecutor(max_workers=4, thread_name_prefix="winner-strategy")


class WinnerStrategy(ABC):
    """decide(payouts, difficulty) -> winning number 0-9."""

    name: str = "base"

    @abstractmethod
    def decide(self, payouts: Dict[int, float], difficulty: str) -> int:
        ...


class HouseFavorableStrategy(WinnerStrategy):
    """easy: the number with the lowest total payout; ties broken at random."""

    name = "easy"

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or RNG

    def decide(self, payouts, difficulty):
        lowest = min(payouts.values())
        return self.rng.choice([n for n, p in sorted(payouts.items()) if p == lowest])


class UniformStrategy(WinnerStrategy):
    """moderate: ignore payouts entirely."""

    name = "moderate"

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or RNG

    def decide(self, payouts, difficulty):
        return self.rng.choice(NUMBERS)


class PlayerFavorableStrategy(WinnerStrategy):
    """
    hard: anything outside the maximum-payout set. Falls back to all ten
    numbers when they all tie.
    """

    name = "hard"

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or RNG

    def decide(self, payouts, difficulty):
        highest = max(payouts.values())
        candidates = [n for n, p in sorted(payouts.items()) if p != highest]
        return self.rng.choice(candidates or list(NUMBERS))


class DifficultyStrategy(WinnerStrategy):
    """Dispatches to the local strategy for the requested difficulty."""

    name = "local"

    def __init__(self, rng: Optional[random.Random] = None):
        self.by_difficulty = {
            "easy": HouseFavorableStrategy(rng),
            "moderate": UniformStrategy(rng),
            "hard": PlayerFavorableStrategy(rng),
        }

    def decide(self, payouts, difficulty):
        strategy = self.by_difficulty.get(difficulty)
        if strategy is None:
            raise SelectionStrategyFailure(f"unknown difficulty {difficulty!r}")
        return strategy.decide(payouts, difficulty)


class RemoteWinnerStrategy(WinnerStrategy):
    """
    POSTs the payout summary and difficulty to an external decision
    endpoint and expects `{"winningNumber": n}` back.
    """

    name = "remote"

    def __init__(self, url: str, api_key: str = "", timeout: float = WINNER_STRATEGY_TIMEOUT):
        if not url:
            raise ValueError("url is required for RemoteWinnerStrategy")
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    def _post(self, body, headers):
        resp = requests.post(self.url, json=body, headers=headers, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def decide(self, payouts, difficulty):
        body = {
            "difficulty": difficulty,
            "payouts": {str(n): round(p, 2) for n, p in sorted(payouts.items())},
        }
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        # requests only bounds each socket read; the deadline bounds the whole call
        future = _REMOTE_POOL.submit(self._post, body, headers)
        try:
            data = future.result(timeout=self.timeout)
        except FutureTimeout as e:
            future.cancel()
            raise SelectionStrategyFailure(f"winner endpoint gave no answer within {self.timeout}s") from e
        except (requests.RequestException, ValueError) as e:
            raise SelectionStrategyFailure(f"winner endpoint failed: {e}") from e

        n = data.get("winningNumber") if isinstance(data, dict) else None
        if isinstance(n, bool) or not isinstance(n, int):
            raise SelectionStrategyFailure(f"winner endpoint returned {data!r}")
        return n


class FallbackStrategy(WinnerStrategy):
    """
    Runs `inner` and checks the answer. Any exception or an answer outside
    0-9 is logged and replaced with a uniform random number.
    """

    name = "fallback"

    def __init__(self, inner: WinnerStrategy, rng: Optional[random.Random] = None):
        self.inner = inner
        self.rng = rng or RNG
        self.last_fell_back = False

    def decide(self, payouts, difficulty):
        self.last_fell_back = False
        try:
            n = self.inner.decide(payouts, difficulty)
            if n not in NUMBERS:
                raise SelectionStrategyFailure(f"{self.inner.name} strategy returned out-of-range {n!r}")
            return n
        except Exception as e:
            logger.warning("winner selection via %s failed, picking at random: %s", self.inner.name, e)
            self.last_fell_back = True
            return self.rng.choice(NUMBERS)


def default_strategy(rng: Optional[random.Random] = None) -> WinnerStrategy:
    """Remote strategy when WINNER_STRATEGY_URL is configured, local rules otherwise."""
    if WINNER_STRATEGY_URL:
        return RemoteWinnerStrategy(WINNER_STRATEGY_URL, WINNER_STRATEGY_API_KEY)
    return DifficultyStrategy(rng)


def resolve_override(override: Union[int, str], rng: Optional[random.Random] = None) -> int:
    """Turn a manual override (number, color or size) into a concrete number."""
    rng = rng or RNG
    if isinstance(override, int) and not isinstance(override, bool):
        if override not in NUMBERS:
            raise ValueError(f"manual winner {override} out of range")
        return override
    if override in COLORS:
        return rng.choice(numbers_matching(color=override))
    if override in SIZES:
        return rng.choice(numbers_matching(size=override))
    raise ValueError(f"invalid manual override {override!r}")


def select_winner_with_source(
    bets: Iterable[Bet],
    difficulty: str,
    override: Optional[Union[int, str]] = None,
    strategy: Optional[WinnerStrategy] = None,
    rng: Optional[random.Random] = None,
) -> Tuple[int, str]:
    """Like `select_winner`, also reporting 'manual', 'strategy' or 'fallback'."""
    if override is not None:
        try:
            return resolve_override(override, rng), "manual"
        except ValueError as e:
            logger.warning("ignoring manual override: %s", e)

    guarded = FallbackStrategy(strategy or DifficultyStrategy(rng), rng)
    n = guarded.decide(payouts_by_number(bets), difficulty)
    return n, ("fallback" if guarded.last_fell_back else "strategy")


def select_winner(
    bets: Iterable[Bet],
    difficulty: str,
    override: Optional[Union[int, str]] = None,
    strategy: Optional[WinnerStrategy] = None,
    rng: Optional[random.Random] = None,
) -> int:
    return select_winner_with_source(bets, difficulty, override, strategy, rng)[0]
