import asyncio
import logging
from typing import List

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .config import ALLOWED_ORIGINS, STATE_PATH, TICK_SECONDS, configure_logging
from .errors import (
    DuplicateAccount,
    InsufficientFunds,
    InvalidBet,
    NotFound,
)
from .game import ColorClashGame
from .models import (
    Bet,
    CreateUserPayload,
    FundsPayload,
    GameSettings,
    LeaderboardEntry,
    OverridePayload,
    PlaceBetPayload,
    ReconcileReport,
    RoundResult,
    RoundView,
    SettingsPayload,
    User,
)

configure_logging()
logger = logging.getLogger("colorclash.api")

app = FastAPI(title="Color Clash API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in ALLOWED_ORIGINS],
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

GAME = ColorClashGame(STATE_PATH)


def get_game() -> ColorClashGame:
    return GAME


# ---------- Endpoints ----------
@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.get("/state.json", response_model=RoundView)
def get_state(game: ColorClashGame = Depends(get_game)):
    return game.rounds.round_view()


@app.post("/bets", response_model=Bet)
def place_bet(p: PlaceBetPayload, game: ColorClashGame = Depends(get_game)):
    try:
        return game.rounds.place_bet(p.userId, p.type, p.value, p.amount)
    except InvalidBet as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.get("/history", response_model=List[RoundResult])
def get_history(limit: int = 50, game: ColorClashGame = Depends(get_game)):
    return game.history.list(limit)


@app.get("/leaderboard", response_model=List[LeaderboardEntry])
def get_leaderboard(top: int = 20, game: ColorClashGame = Depends(get_game)):
    return game.history.leaderboard(top)


# ---------- Accounts ----------
@app.post("/users", response_model=User)
def create_user(p: CreateUserPayload, game: ColorClashGame = Depends(get_game)):
    try:
        return game.ledger.create_user(p.id, p.balance, p.role)
    except DuplicateAccount as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.get("/users/{user_id}", response_model=User)
def get_user(user_id: str, game: ColorClashGame = Depends(get_game)):
    try:
        return game.ledger.get_user(user_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post("/users/{user_id}/funds", response_model=User)
def add_funds(user_id: str, p: FundsPayload, game: ColorClashGame = Depends(get_game)):
    try:
        game.ledger.deposit(user_id, p.amount)
        return game.ledger.get_user(user_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post("/users/{user_id}/withdraw", response_model=User)
def withdraw(user_id: str, p: FundsPayload, game: ColorClashGame = Depends(get_game)):
    try:
        game.ledger.withdraw(user_id, p.amount)
        return game.ledger.get_user(user_id)
    except InsufficientFunds as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


# ---------- Admin ----------
@app.get("/admin/settings", response_model=GameSettings)
def get_settings(game: ColorClashGame = Depends(get_game)):
    return game.settings.get()


@app.post("/admin/settings", response_model=GameSettings)
def set_settings(p: SettingsPayload, game: ColorClashGame = Depends(get_game)):
    return game.settings.set_difficulty(p.difficulty)


@app.post("/admin/override", response_model=GameSettings)
def set_override(p: OverridePayload, game: ColorClashGame = Depends(get_game)):
    return game.settings.set_manual_override(p.value())


@app.delete("/admin/override", response_model=GameSettings)
def clear_override(game: ColorClashGame = Depends(get_game)):
    return game.settings.clear_manual_override()


@app.get("/admin/rounds/{round_id}/totals")
def round_totals(round_id: str, game: ColorClashGame = Depends(get_game)):
    try:
        return game.history.round_totals(round_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post("/admin/reconcile", response_model=ReconcileReport)
def reconcile(game: ColorClashGame = Depends(get_game)):
    applied, pending = game.ledger.reconcile()
    return {"applied": applied, "pending": pending}


# ---------- round loop (background) ----------
# Open → AwaitingSettlement → settle → Settled (cooldown) → next round Open.
# the event loop only keeps a weak reference to tasks
_round_task = None


@app.on_event("startup")
async def _start_round_loop():
    global _round_task
    _round_task = asyncio.create_task(round_loop())


@app.on_event("shutdown")
async def _stop_round_loop():
    global _round_task
    if _round_task is not None:
        _round_task.cancel()
        _round_task = None


async def round_loop():
    while True:
        try:
            # off the event loop: a remote winner strategy may block up to its timeout
            await asyncio.to_thread(GAME.tick)
        except Exception:
            # a failed tick is retried on the next one; the loop must not die
            logger.exception("round loop tick failed")
        await asyncio.sleep(TICK_SECONDS)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("colorclash.main:app", host="0.0.0.0", port=8000)
