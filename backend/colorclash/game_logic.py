# game_logic.py
from typing import Dict, Iterable, List, Optional

from .config import VIOLET_MULTIPLIER
from .models import Bet, COLORS, SIZES

# ----------------------------
# Outcome mapping (fixed for the life of the process)
# ----------------------------
NUMBER_CONFIG: Dict[int, Dict[str, str]] = {
    0: {"color": "Violet", "size": "Small"},
    1: {"color": "Green", "size": "Small"},
    2: {"color": "Red", "size": "Small"},
    3: {"color": "Green", "size": "Small"},
    4: {"color": "Red", "size": "Small"},
    5: {"color": "Violet", "size": "Big"},
    6: {"color": "Red", "size": "Big"},
    7: {"color": "Green", "size": "Big"},
    8: {"color": "Red", "size": "Big"},
    9: {"color": "Green", "size": "Big"},
}

NUMBERS = tuple(sorted(NUMBER_CONFIG))

ODDS = {
    "Color": {"Red": 2.0, "Green": 2.0, "Violet": VIOLET_MULTIPLIER},
    "Number": 9.0,
    "BigSmall": 2.0,
}


def number_details(num: int) -> Dict[str, str]:
    return dict(NUMBER_CONFIG[num])


def multiplier(bet_type: str, value) -> float:
    if bet_type == "Color":
        return ODDS["Color"].get(value, 0.0)
    return float(ODDS.get(bet_type, 0.0))


def payout(bet: Bet, winning_number: int) -> float:
    """
    Gross amount paid back for `bet` if `winning_number` comes up (stake
    included), or 0 for a losing bet. Never raises.
    """
    details = NUMBER_CONFIG.get(winning_number)
    if details is None:
        return 0.0

    bet_type = getattr(bet, "type", None)
    value = getattr(bet, "value", None)
    won = False
    if bet_type == "Color":
        won = value == details["color"]
    elif bet_type == "Number":
        won = not isinstance(value, bool) and value == winning_number
    elif bet_type == "BigSmall":
        won = value == details["size"]

    if not won:
        return 0.0
    return float(bet.amount) * multiplier(bet_type, value)


def payouts_by_number(bets: Iterable[Bet]) -> Dict[int, float]:
    """
    Total payout the house owes for every candidate winning number, rounded
    to cents so equal totals compare equal.
    """
    bets = list(bets)
    return {n: round(sum(payout(b, n) for b in bets), 2) for n in NUMBERS}


def numbers_matching(color: Optional[str] = None, size: Optional[str] = None) -> List[int]:
    return [
        n for n, d in NUMBER_CONFIG.items()
        if (color is None or d["color"] == color) and (size is None or d["size"] == size)
    ]


def bet_totals(bets: Iterable[Bet]) -> Dict[str, Dict[str, float]]:
    """Staked amount per category, keyed the way the admin audit shows it."""
    totals = {
        "Color": {c: 0.0 for c in COLORS},
        "Number": {str(n): 0.0 for n in NUMBERS},
        "BigSmall": {s: 0.0 for s in SIZES},
    }
    for b in bets:
        bucket = totals.get(b.type)
        key = str(b.value)
        if bucket is not None and key in bucket:
            bucket[key] += float(b.amount)
    return totals
