import random
import time
from collections import Counter
from unittest.mock import MagicMock, patch

import pytest
import requests

from colorclash.errors import SelectionStrategyFailure
from colorclash.game_logic import payouts_by_number
from colorclash.services.winner_strategy import (
    DifficultyStrategy,
    FallbackStrategy,
    RemoteWinnerStrategy,
    WinnerStrategy,
    resolve_override,
    select_winner,
    select_winner_with_source,
)


class Broken(WinnerStrategy):
    name = "broken"

    def decide(self, payouts, difficulty):
        raise RuntimeError("boom")


class Fixed(WinnerStrategy):
    name = "fixed"

    def __init__(self, n):
        self.n = n

    def decide(self, payouts, difficulty):
        return self.n


@pytest.fixture
def everything_but_three(make_bet):
    # every number except 3 costs 90; 3 is the unique cheapest
    return [make_bet("Number", n, 10) for n in range(10) if n != 3]


def test_easy_picks_unique_minimum(everything_but_three):
    for seed in range(50):
        assert select_winner(everything_but_three, "easy", rng=random.Random(seed)) == 3


def test_easy_breaks_ties_among_cheapest(make_bet):
    bets = [make_bet("Number", 7, 100, "alice"), make_bet("Color", "Green", 50, "bob")]
    rng = random.Random(7)
    seen = {select_winner(bets, "easy", rng=rng) for _ in range(300)}
    assert seen == {0, 2, 4, 5, 6, 8}


def test_hard_never_returns_max_payout_number(make_bet):
    bets = [make_bet("Number", 7, 100), make_bet("Number", 2, 100), make_bet("Color", "Red", 1)]
    by_number = payouts_by_number(bets)
    top = max(by_number.values())
    max_set = {n for n, p in by_number.items() if p == top}
    assert max_set == {2}
    rng = random.Random(3)
    for _ in range(500):
        assert select_winner(bets, "hard", rng=rng) not in max_set


def test_hard_falls_back_to_all_numbers_when_everything_ties():
    rng = random.Random(11)
    seen = {select_winner([], "hard", rng=rng) for _ in range(500)}
    assert seen == set(range(10))


def test_moderate_is_uniform(everything_but_three):
    # chi-square, 9 degrees of freedom, critical value at p=0.001
    rng = random.Random(42)
    trials = 10000
    counts = Counter(select_winner(everything_but_three, "moderate", rng=rng) for _ in range(trials))
    expected = trials / 10
    chi2 = sum((counts[n] - expected) ** 2 / expected for n in range(10))
    assert set(counts) == set(range(10))
    assert chi2 < 27.88


def test_manual_number_override_wins(everything_but_three):
    assert select_winner_with_source(everything_but_three, "easy", override=8) == (8, "manual")


def test_manual_color_and_size_overrides_resolve_within_constraint():
    rng = random.Random(5)
    violets = {resolve_override("Violet", rng) for _ in range(100)}
    assert violets == {0, 5}
    smalls = {resolve_override("Small", rng) for _ in range(200)}
    assert smalls == {0, 1, 2, 3, 4}


def test_invalid_override_is_ignored(everything_but_three):
    n, source = select_winner_with_source(everything_but_three, "easy", override="Blue")
    assert (n, source) == (3, "strategy")


def test_failing_strategy_falls_back_to_random():
    n, source = select_winner_with_source([], "easy", strategy=Broken(), rng=random.Random(1))
    assert 0 <= n <= 9
    assert source == "fallback"


@pytest.mark.parametrize("bad", [-1, 10, 42, "7", None])
def test_out_of_range_answer_falls_back(bad):
    guarded = FallbackStrategy(Fixed(bad), random.Random(2))
    n = guarded.decide(payouts_by_number([]), "easy")
    assert n in range(10)
    assert guarded.last_fell_back


def test_valid_answer_passes_through():
    guarded = FallbackStrategy(Fixed(6))
    assert guarded.decide(payouts_by_number([]), "easy") == 6
    assert not guarded.last_fell_back


def test_unknown_difficulty_raises_inside_local_strategy():
    with pytest.raises(SelectionStrategyFailure):
        DifficultyStrategy().decide(payouts_by_number([]), "impossible")
    n, source = select_winner_with_source([], "impossible", rng=random.Random(0))
    assert source == "fallback" and 0 <= n <= 9


def _response(payload):
    resp = MagicMock()
    resp.raise_for_status.return_value = None
    resp.json.return_value = payload
    return resp


def test_remote_strategy_posts_payout_summary(make_bet):
    remote = RemoteWinnerStrategy("http://decider.local/decide", api_key="k", timeout=1.5)
    with patch("colorclash.services.winner_strategy.requests.post",
               return_value=_response({"winningNumber": 4})) as post:
        n = select_winner([make_bet("Number", 7, 100)], "easy", strategy=remote)

    assert n == 4
    _, kwargs = post.call_args
    assert kwargs["timeout"] == 1.5
    assert kwargs["json"]["difficulty"] == "easy"
    assert kwargs["json"]["payouts"]["7"] == 900
    assert kwargs["headers"] == {"Authorization": "Bearer k"}


def test_remote_timeout_falls_back():
    remote = RemoteWinnerStrategy("http://decider.local/decide")
    with patch("colorclash.services.winner_strategy.requests.post",
               side_effect=requests.Timeout("slow")):
        n, source = select_winner_with_source([], "easy", strategy=remote, rng=random.Random(9))
    assert source == "fallback" and 0 <= n <= 9


@pytest.mark.parametrize("payload", [{"winningNumber": 12}, {"winningNumber": "3"}, {}, [1, 2]])
def test_remote_bad_payload_falls_back(payload):
    remote = RemoteWinnerStrategy("http://decider.local/decide")
    with patch("colorclash.services.winner_strategy.requests.post", return_value=_response(payload)):
        n, source = select_winner_with_source([], "moderate", strategy=remote, rng=random.Random(9))
    assert source == "fallback" and 0 <= n <= 9


def test_remote_unparseable_body_falls_back():
    resp = _response(None)
    resp.json.side_effect = ValueError("not json")
    remote = RemoteWinnerStrategy("http://decider.local/decide")
    with patch("colorclash.services.winner_strategy.requests.post", return_value=resp):
        _, source = select_winner_with_source([], "hard", strategy=remote)
    assert source == "fallback"


def test_remote_requires_url():
    with pytest.raises(ValueError):
        RemoteWinnerStrategy("")


@pytest.fixture
def cent_bets(make_bet):
    # red and green both owe 0.6, which only compares equal after rounding
    return [
        make_bet("Color", "Red", 0.1),
        make_bet("Color", "Red", 0.2),
        make_bet("Color", "Green", 0.3, "bob"),
    ]


def test_hard_treats_equal_cent_totals_as_a_tie(cent_bets):
    rng = random.Random(5)
    seen = {select_winner(cent_bets, "hard", rng=rng) for _ in range(300)}
    assert seen == {0, 5}


def test_easy_treats_equal_cent_totals_as_a_tie(cent_bets, make_bet):
    bets = cent_bets + [make_bet("Color", "Violet", 1, "carol")]
    rng = random.Random(5)
    seen = {select_winner(bets, "easy", rng=rng) for _ in range(500)}
    assert seen == {1, 2, 3, 4, 6, 7, 8, 9}


def test_remote_deadline_covers_the_whole_call():
    def trickle(*args, **kwargs):
        # each read stays under the socket timeout but the call as a whole does not
        time.sleep(1)
        return _response({"winningNumber": 4})

    remote = RemoteWinnerStrategy("http://decider.local/decide", timeout=0.1)
    started = time.monotonic()
    with patch("colorclash.services.winner_strategy.requests.post", side_effect=trickle):
        n, source = select_winner_with_source([], "easy", strategy=remote, rng=random.Random(9))
    assert time.monotonic() - started < 0.9
    assert source == "fallback" and 0 <= n <= 9


def test_remote_deadline_raises_selection_failure():
    remote = RemoteWinnerStrategy("http://decider.local/decide", timeout=0.05)
    with patch("colorclash.services.winner_strategy.requests.post",
               side_effect=lambda *a, **kw: time.sleep(0.5)):
        with pytest.raises(SelectionStrategyFailure, match="no answer"):
            remote.decide({n: 0 for n in range(10)}, "easy")
