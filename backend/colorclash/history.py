# history.py
from collections import defaultdict
from typing import Dict, List, Optional

from .errors import DuplicateRoundResult, NotFound
from .game_logic import bet_totals
from .models import LeaderboardEntry, RoundResult
from .state_store import StateStore


class HistoryStore:
    """Append-only log of settled rounds, oldest first on disk."""

    def __init__(self, store: StateStore):
        self.store = store

    def append(self, result: RoundResult) -> None:
        def mutate(data: Dict):
            if any(r["roundId"] == result.roundId for r in data["history"]):
                raise DuplicateRoundResult(f"round {result.roundId} already has a result")
            data["history"].append(result.model_dump())

        self.store.with_state(mutate)

    def get(self, round_id: str) -> Optional[RoundResult]:
        for raw in self.store.snapshot()["history"]:
            if raw["roundId"] == round_id:
                return RoundResult.model_validate(raw)
        return None

    def list(self, limit: int = 50) -> List[RoundResult]:
        """Most recent first."""
        raw = self.store.snapshot()["history"]
        recent = raw[::-1][:max(0, int(limit))]
        return [RoundResult.model_validate(r) for r in recent]

    def leaderboard(self, top: int = 20) -> List[LeaderboardEntry]:
        """Net winnings (payouts minus stakes) per user over all rounds."""
        gains: Dict[str, float] = defaultdict(float)
        for raw in self.store.snapshot()["history"]:
            for bet in raw["bets"]:
                gains[bet["userId"]] += float(bet.get("payout") or 0) - float(bet["amount"])

        ranked = sorted(gains.items(), key=lambda kv: kv[1], reverse=True)[:top]
        return [LeaderboardEntry(userId=uid, totalWinnings=round(v, 2)) for uid, v in ranked]

    def round_totals(self, round_id: str) -> Dict:
        result = self.get(round_id)
        if result is None:
            raise NotFound(f"no result for round {round_id}")
        return {
            "roundId": result.roundId,
            "winningNumber": result.winningNumber,
            "totalStake": result.totalStake,
            "totalPayout": result.totalPayout,
            "byCategory": bet_totals(result.bets),
        }
