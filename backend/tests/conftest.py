import random
from datetime import datetime, timedelta, timezone

import pytest

from colorclash.game import ColorClashGame
from colorclash.models import Bet
from colorclash.services.winner_strategy import DifficultyStrategy


class FakeClock:
    """Manually advanced clock so round deadlines are deterministic."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def game(clock, rng):
    return ColorClashGame(
        path=None,
        clock=clock,
        strategy=DifficultyStrategy(rng),
        rng=rng,
        round_duration=30,
        post_round_delay=5,
    )


@pytest.fixture
def funded(game):
    """Two players with 1000 each."""
    game.ledger.create_user("alice", 1000)
    game.ledger.create_user("bob", 1000)
    return game


@pytest.fixture
def make_bet():
    def _make(bet_type, value, amount, user="alice"):
        return Bet(type=bet_type, value=value, amount=amount, userId=user,
                   placedAt="2026-01-01T12:00:00+00:00")
    return _make
