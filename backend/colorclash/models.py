from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import List, Optional, Literal, Union

Color = Literal["Red", "Green", "Violet"]
Size = Literal["Big", "Small"]
BetType = Literal["Color", "Number", "BigSmall"]
Difficulty = Literal["easy", "moderate", "hard"]
Phase = Literal["Open", "AwaitingSettlement", "Settled", "Archived"]
SelectionSource = Literal["manual", "strategy", "fallback"]

COLORS = ("Red", "Green", "Violet")
SIZES = ("Big", "Small")
DIFFICULTIES = ("easy", "moderate", "hard")


def check_bet_value(bet_type: str, value) -> None:
    """Raise ValueError unless `value` is a legal choice for `bet_type`."""
    if bet_type == "Color":
        if value not in COLORS:
            raise ValueError(f"color must be one of {', '.join(COLORS)}")
    elif bet_type == "Number":
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 9:
            raise ValueError("number must be an integer 0-9")
    elif bet_type == "BigSmall":
        if value not in SIZES:
            raise ValueError("size must be Big or Small")
    else:
        raise ValueError(f"unknown bet type {bet_type!r}")


class Bet(BaseModel):
    # payout is filled exactly once, via model_copy, at settlement
    model_config = ConfigDict(frozen=True)

    type: BetType
    value: Union[int, str]
    amount: float = Field(..., gt=0, allow_inf_nan=False)
    payout: Optional[float] = None
    userId: str
    placedAt: str

    @model_validator(mode="after")
    def _value_matches_type(self):
        check_bet_value(self.type, self.value)
        return self


class Round(BaseModel):
    id: str
    opensAt: str
    closesAt: str
    bets: List[Bet] = Field(default_factory=list)
    winningNumber: Optional[int] = Field(None, ge=0, le=9)
    settledAt: Optional[str] = None


class RoundResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    roundId: str
    winningNumber: int = Field(..., ge=0, le=9)
    bets: List[Bet]
    totalPayout: float
    totalStake: float = 0
    selectionSource: SelectionSource = "strategy"
    settledAt: Optional[str] = None


class GameSettings(BaseModel):
    difficulty: Difficulty = "easy"
    manualWinner: Optional[int] = Field(None, ge=0, le=9)
    manualWinnerColor: Optional[Color] = None
    manualWinnerSize: Optional[Size] = None
    version: int = 0

    def manual_override(self) -> Optional[Union[int, str]]:
        if self.manualWinner is not None:
            return self.manualWinner
        return self.manualWinnerColor or self.manualWinnerSize


class User(BaseModel):
    id: str
    balance: float = Field(0, ge=0, allow_inf_nan=False)
    role: Literal["admin", "user"] = "user"


class PendingCredit(BaseModel):
    userId: str
    amount: float = Field(..., allow_inf_nan=False)
    roundId: str
    reason: str = ""


class LeaderboardEntry(BaseModel):
    userId: str
    totalWinnings: float


class RoundView(BaseModel):
    roundId: str
    phase: Phase
    opensAt: str
    closesAt: str
    secondsLeft: int
    betCount: int
    totalStaked: float
    winningNumber: Optional[int] = None


# --- request payloads ---
class PlaceBetPayload(BaseModel):
    userId: str
    type: BetType
    value: Union[int, str]
    amount: float = Field(..., allow_inf_nan=False)


class CreateUserPayload(BaseModel):
    id: str
    balance: float = Field(0, ge=0, allow_inf_nan=False)
    role: Literal["admin", "user"] = "user"


class FundsPayload(BaseModel):
    amount: float = Field(..., gt=0, allow_inf_nan=False)


class SettingsPayload(BaseModel):
    difficulty: Difficulty


class OverridePayload(BaseModel):
    number: Optional[int] = Field(None, ge=0, le=9)
    color: Optional[Color] = None
    size: Optional[Size] = None

    @model_validator(mode="after")
    def _exactly_one(self):
        given = [v for v in (self.number, self.color, self.size) if v is not None]
        if len(given) != 1:
            raise ValueError("set exactly one of number, color, size")
        return self

    def value(self) -> Union[int, str]:
        return self.number if self.number is not None else (self.color or self.size)


class ReconcileReport(BaseModel):
    applied: List[PendingCredit]
    pending: List[PendingCredit]
