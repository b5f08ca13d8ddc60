from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from datetime import datetime


@dataclass
class UserStats:
    total_bets: int = 0
    won_bets: int = 0
    lost_bets: int = 0
    pending_bets: int = 0
    total_winnings: float = 0.0
    total_losses: float = 0.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "UserStats":
        data = data or {}
        return cls(
            total_bets=int(data.get("totalBets", 0) or 0),
            won_bets=int(data.get("wonBets", 0) or 0),
            lost_bets=int(data.get("lostBets", 0) or 0),
            pending_bets=int(data.get("pendingBets", 0) or 0),
            total_winnings=float(data.get("totalWinnings", 0) or 0),
            total_losses=float(data.get("totalLosses", 0) or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalBets": self.total_bets,
            "wonBets": self.won_bets,
            "lostBets": self.lost_bets,
            "pendingBets": self.pending_bets,
            "totalWinnings": self.total_winnings,
            "totalLosses": self.total_losses,
        }


@dataclass
class User:
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    full_name: str = ""
    balance: float = 0.0
    stats: UserStats = field(default_factory=UserStats)
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        """Build a User from the auth service's camelCase payload."""
        first = data.get("firstName", "") or ""
        last = data.get("lastName", "") or ""
        return cls(
            id=str(data.get("id") or data.get("_id") or ""),
            email=data.get("email", "") or "",
            first_name=first,
            last_name=last,
            full_name=data.get("fullName") or f"{first} {last}".strip(),
            balance=max(float(data.get("balance", 0) or 0), 0.0),
            stats=UserStats.from_dict(data.get("stats")),
            is_active=bool(data.get("isActive", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "fullName": self.full_name,
            "balance": self.balance,
            "stats": self.stats.to_dict(),
            "isActive": self.is_active,
        }


@dataclass
class Session:
    token: str
    user: Optional[User] = None
    saved_at: Optional[datetime] = None  # When the cached user was last written


@dataclass
class AuthResponse:
    success: bool
    message: str = ""
    token: Optional[str] = None
    user: Optional[User] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthResponse":
        user = data.get("user")
        return cls(
            success=bool(data.get("success")),
            message=data.get("message", "") or "",
            token=data.get("token"),
            user=User.from_dict(user) if isinstance(user, dict) else None,
        )


@dataclass
class CartItem:
    id: str
    fixture_id: int
    match: str
    bet_type: str
    selection: str
    odds: float
    home_team: str = ""
    away_team: str = ""

    @staticmethod
    def make_id(fixture_id: int, bet_type: str, selection: str) -> str:
        return f"{fixture_id}-{bet_type}-{selection}"


@dataclass
class SubmissionResult:
    item_id: str
    success: bool
    message: str = ""


@dataclass
class BatchResult:
    results: List[SubmissionResult] = field(default_factory=list)
    validation_error: Optional[str] = None

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)


@dataclass
class ServiceHealth:
    name: str
    status: str = "unknown"  # 'healthy', 'unhealthy', 'unknown'
    response: Optional[Any] = None
    error: Optional[str] = None
