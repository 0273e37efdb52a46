# game_settings.py
import logging
from typing import Dict, Union

from .models import COLORS, SIZES, GameSettings
from .state_store import StateStore

logger = logging.getLogger("colorclash.settings")

OVERRIDE_FIELDS = ("manualWinner", "manualWinnerColor", "manualWinnerSize")


class SettingsStore:
    """
    Admin-controlled game settings. Every write bumps `version`. The manual
    override is single-shot: at most one of the three override fields is set.
    """

    def __init__(self, store: StateStore):
        self.store = store

    def get(self) -> GameSettings:
        return GameSettings.model_validate(self.store.snapshot()["settings"])

    def _write(self, update: Dict) -> GameSettings:
        out = {}

        def mutate(data: Dict):
            current = GameSettings.model_validate(data["settings"])
            merged = current.model_dump()
            merged.update(update)
            merged["version"] = current.version + 1
            settings = GameSettings.model_validate(merged)
            data["settings"] = settings.model_dump()
            out["settings"] = settings

        self.store.with_state(mutate)
        return out["settings"]

    def set_difficulty(self, difficulty: str) -> GameSettings:
        settings = self._write({"difficulty": difficulty})
        logger.info("difficulty set to %s (v%d)", settings.difficulty, settings.version)
        return settings

    def set_manual_override(self, value: Union[int, str]) -> GameSettings:
        """A bare number 0-9, a color, or a size. Setting one clears the others."""
        update = {f: None for f in OVERRIDE_FIELDS}
        if isinstance(value, int) and not isinstance(value, bool):
            update["manualWinner"] = value
        elif value in COLORS:
            update["manualWinnerColor"] = value
        elif value in SIZES:
            update["manualWinnerSize"] = value
        else:
            raise ValueError(f"invalid manual override {value!r}")
        settings = self._write(update)
        logger.info("manual override set to %r (v%d)", value, settings.version)
        return settings

    def clear_manual_override(self) -> GameSettings:
        current = self.get()
        if current.manual_override() is None:
            return current
        settings = self._write({f: None for f in OVERRIDE_FIELDS})
        logger.info("manual override cleared (v%d)", settings.version)
        return settings
