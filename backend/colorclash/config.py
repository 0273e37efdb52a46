# config.py
import logging
import os
import pathlib

# ----------------------------
# Round timing (seconds)
# ----------------------------
ROUND_DURATION = int(os.getenv("ROUND_DURATION", "30"))
POST_ROUND_DELAY = int(os.getenv("POST_ROUND_DELAY", "5"))
TICK_SECONDS = float(os.getenv("TICK_SECONDS", "0.5"))

# ----------------------------
# Odds / game
# ----------------------------
# Red/Green pay 2x; Violet (0 and 5 only) pays this.
VIOLET_MULTIPLIER = float(os.getenv("VIOLET_MULTIPLIER", "5"))
DEFAULT_DIFFICULTY = os.getenv("DEFAULT_DIFFICULTY", "easy").strip().lower()

# ----------------------------
# Persistence
# ----------------------------
STATE_PATH = pathlib.Path(os.getenv("STATE_PATH", "colorclash_state.json"))

# ----------------------------
# Remote winner strategy (optional)
# ----------------------------
WINNER_STRATEGY_URL = os.getenv("WINNER_STRATEGY_URL", "").strip()
WINNER_STRATEGY_API_KEY = os.getenv("WINNER_STRATEGY_API_KEY", "").strip()
WINNER_STRATEGY_TIMEOUT = float(os.getenv("WINNER_STRATEGY_TIMEOUT", "3"))

# ----------------------------
# HTTP
# ----------------------------
ALLOWED_ORIGINS = os.getenv(
    "FRONTEND_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000"
).split(",")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # requests retries are noisy at INFO
    for _noisy in ("urllib3", "requests"):
        logging.getLogger(_noisy).setLevel(logging.WARNING)
