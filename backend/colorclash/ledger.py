# ledger.py
import logging
import math
from typing import Dict, Iterable, List, Tuple

from .errors import DuplicateAccount, InsufficientFunds, LedgerUpdateFailure, NotFound
from .models import PendingCredit, User
from .state_store import StateStore

logger = logging.getLogger("colorclash.ledger")


def _money(x: float) -> float:
    return round(float(x), 2)


class Ledger:
    """Per-user balances. A balance can never go below zero."""

    def __init__(self, store: StateStore):
        self.store = store

    # --- accounts ---
    def create_user(self, user_id: str, balance: float = 0, role: str = "user") -> User:
        user = User(id=user_id, balance=_money(balance), role=role)

        def mutate(data: Dict):
            if user_id in data["users"]:
                raise DuplicateAccount(f"user {user_id} already exists")
            data["users"][user_id] = user.model_dump()

        self.store.with_state(mutate)
        logger.info("created user %s with balance %.2f", user_id, user.balance)
        return user

    def get_user(self, user_id: str) -> User:
        raw = self.store.snapshot()["users"].get(user_id)
        if raw is None:
            raise NotFound(f"user {user_id} not found")
        return User.model_validate(raw)

    def get_balance(self, user_id: str) -> float:
        return self.get_user(user_id).balance

    # --- balance changes ---
    def adjust_balance(self, user_id: str, delta: float) -> float:
        """Apply `delta`; raises InsufficientFunds (nothing applied) if it would go negative."""
        return self.batch_adjust([(user_id, delta)])[user_id]

    def batch_adjust(self, entries: Iterable[Tuple[str, float]]) -> Dict[str, float]:
        """
        Apply many deltas as one unit. Every entry is checked against the
        running balance before anything is written, so the batch either
        lands completely or not at all. Returns the new balance per user.
        """
        entries = [(uid, _money(delta)) for uid, delta in entries]
        for uid, delta in entries:
            if not math.isfinite(delta):
                raise ValueError(f"non-finite balance change for {uid}")
        result: Dict[str, float] = {}

        with self.store.transaction() as data:
            users = data["users"]
            planned: Dict[str, float] = {}
            for uid, delta in entries:
                if uid not in users:
                    raise NotFound(f"user {uid} not found")
                current = planned.get(uid, float(users[uid].get("balance", 0)))
                new_balance = _money(current + delta)
                if new_balance < 0:
                    raise InsufficientFunds(uid, current, delta)
                planned[uid] = new_balance

            for uid, new_balance in planned.items():
                users[uid]["balance"] = new_balance
                result[uid] = new_balance
        return result

    def withdraw(self, user_id: str, amount: float) -> float:
        if amount <= 0:
            raise ValueError("amount must be positive")
        return self.adjust_balance(user_id, -amount)

    def deposit(self, user_id: str, amount: float) -> float:
        if amount <= 0:
            raise ValueError("amount must be positive")
        return self.adjust_balance(user_id, amount)

    # --- settlement credits ---
    def credit_many(self, credits: Dict[str, float], round_id: str) -> Dict[str, float]:
        """
        Credit winners for a round. Tries the whole batch first; if that
        fails, credits users one by one and parks whatever still fails in
        the pending-credits queue. Raises LedgerUpdateFailure listing the
        parked users so the caller can report them.
        """
        credits = {uid: amt for uid, amt in credits.items() if amt > 0}
        if not credits:
            return {}
        try:
            return self.batch_adjust(credits.items())
        except (NotFound, InsufficientFunds) as e:
            logger.warning("batch credit for round %s failed (%s); retrying per user", round_id, e)

        applied: Dict[str, float] = {}
        failed: Dict[str, float] = {}
        for uid, amt in credits.items():
            try:
                applied[uid] = self.adjust_balance(uid, amt)
            except (NotFound, InsufficientFunds) as e:
                failed[uid] = amt
                self._park(PendingCredit(userId=uid, amount=amt, roundId=round_id, reason=str(e)))

        if failed:
            raise LedgerUpdateFailure(
                f"round {round_id}: {len(failed)} credit(s) parked for reconciliation", failed
            )
        return applied

    def _park(self, credit: PendingCredit) -> None:
        self.store.with_state(lambda data: data["pendingCredits"].append(credit.model_dump()))
        logger.error(
            "credit of %.2f to %s for round %s parked: %s",
            credit.amount, credit.userId, credit.roundId, credit.reason,
        )

    def pending_credits(self) -> List[PendingCredit]:
        return [PendingCredit.model_validate(p) for p in self.store.snapshot()["pendingCredits"]]

    def reconcile(self) -> Tuple[List[PendingCredit], List[PendingCredit]]:
        """Retry parked credits. Returns (applied, still_pending)."""
        applied: List[PendingCredit] = []
        pending: List[PendingCredit] = []

        with self.store.transaction() as data:
            queue = [PendingCredit.model_validate(p) for p in data["pendingCredits"]]
            for credit in queue:
                try:
                    self.adjust_balance(credit.userId, credit.amount)
                    applied.append(credit)
                except (NotFound, InsufficientFunds) as e:
                    pending.append(credit.model_copy(update={"reason": str(e)}))
            data["pendingCredits"] = [p.model_dump() for p in pending]

        if applied:
            logger.info("reconciled %d parked credit(s)", len(applied))
        return applied, pending
