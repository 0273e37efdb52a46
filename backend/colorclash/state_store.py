# state_store.py
import copy
import json
import logging
import pathlib
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, Optional

from .config import DEFAULT_DIFFICULTY

logger = logging.getLogger("colorclash.store")


# ----------------------------
# Time helpers
# ----------------------------
def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def parse_iso(s: str) -> datetime:
    """Parse ISO8601 ('...Z' or with offset) to aware datetime (UTC)."""
    if not s:
        return now_utc()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def default_state() -> Dict:
    return {
        "round": None,
        "users": {},
        "history": [],
        "settings": {"difficulty": DEFAULT_DIFFICULTY, "version": 0},
        # credits that could not be applied at settlement, awaiting reconcile
        "pendingCredits": [],
    }


class StateStore:
    """
    One JSON document holding rounds, balances, history and settings.

    Writers are serialized by a process-wide lock. `transaction()` loads the
    document once, hands out the live dict, and saves it once when the
    outermost block exits cleanly; an exception discards every change made
    inside the block. Nested transactions on the same thread join the
    outer one.
    """

    def __init__(self, path: Optional[pathlib.Path] = None):
        self.path = pathlib.Path(path) if path is not None else None
        self._memory: Optional[Dict] = None
        self._lock = threading.RLock()
        self._txn: Optional[Dict] = None

    # --- raw document access ---
    def load(self) -> Dict:
        """Load persisted state, or bootstrap a default one."""
        with self._lock:
            if self._txn is not None:
                return self._txn
            if self.path is None:
                if self._memory is None:
                    self._memory = default_state()
                return copy.deepcopy(self._memory)
            if self.path.exists():
                return json.loads(self.path.read_text())
            data = default_state()
            self.save(data)
            return data

    def save(self, data: Dict) -> None:
        with self._lock:
            if self.path is None:
                self._memory = copy.deepcopy(data)
                return
            # write-then-rename so a crash never leaves a half-written file
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(data, indent=2))
            tmp.replace(self.path)

    def snapshot(self) -> Dict:
        """Read-only copy of the whole document."""
        with self._lock:
            return copy.deepcopy(self.load())

    @contextmanager
    def transaction(self) -> Iterator[Dict]:
        with self._lock:
            if self._txn is not None:
                yield self._txn
                return
            data = self.load()
            self._txn = data
            try:
                yield data
            except BaseException:
                logger.debug("transaction rolled back")
                raise
            finally:
                self._txn = None
            self.save(data)

    def with_state(self, mutator: Callable[[Dict], None]) -> Dict:
        """Load -> mutate -> save. Returns final state dict."""
        with self.transaction() as data:
            mutator(data)
        return data
