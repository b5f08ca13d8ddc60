import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any, List

from .models import User

logger = logging.getLogger(__name__)


@dataclass
class ProfileSummary:
    name: str
    username: str
    email: str
    badge: str
    balance: float
    total_bets: int
    win_rate: float
    total_profit: float = 0.0
    current_streak: int = 0
    longest_streak: int = 0


def badge_for_balance(balance: float) -> str:
    if balance > 10000:
        return "Gold"
    if balance > 5000:
        return "Silver"
    return "Bronze"


def build_profile_summary(user: User, stats: Optional[Dict[str, Any]] = None) -> ProfileSummary:
    """
    Merge the session user with the optional stats-summary payload.

    Stats from the bets service win over the counters cached on the user.
    """
    total = user.stats.total_bets
    win_rate = round(user.stats.won_bets / total * 100) if total > 0 else 0
    summary = ProfileSummary(
        name=user.full_name or f"{user.first_name} {user.last_name}".strip(),
        username="@" + user.email.split("@")[0],
        email=user.email,
        badge=badge_for_balance(user.balance),
        balance=user.balance,
        total_bets=total,
        win_rate=win_rate,
    )
    if stats:
        summary.total_bets = stats.get("totalBets") or 0
        summary.win_rate = stats.get("winRate") or 0
        summary.total_profit = stats.get("totalProfit") or 0
        summary.current_streak = stats.get("currentStreak") or 0
        summary.longest_streak = stats.get("longestWinStreak") or 0
    return summary


def summarize_bet(bet: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a bet-history record for display."""
    match_info = bet.get("matchInfo") or {}
    home = (match_info.get("homeTeam") or {}).get("name", "")
    away = (match_info.get("awayTeam") or {}).get("name", "")
    stake = float(bet.get("stake", 0) or 0)
    status = bet.get("status", "")

    if status == "won":
        profit = float(bet.get("potentialWin", 0) or 0) - stake
    elif status == "lost":
        profit = -stake
    else:
        profit = 0.0

    return {
        "id": bet.get("id"),
        "match": f"{home} vs {away}",
        "market": bet.get("betType", "").replace("_", " ").title(),
        "selection": bet.get("selection"),
        "odds": bet.get("odds"),
        "stake": stake,
        "placed_at": bet.get("placedAt"),
        "result": status,
        "profit": profit,
    }


async def load_profile(client, user: User, recent_limit: int = 10):
    """Fetch stats and recent bets for the profile view. Failed calls fall back to cached data."""
    stats_response = await client.get_betting_stats()
    stats = stats_response.get("stats") if stats_response.get("success") else None
    summary = build_profile_summary(user, stats)

    bets_response = await client.get_user_bets(1, recent_limit)
    recent = []
    if bets_response.get("success"):
        recent = [summarize_bet(bet) for bet in bets_response.get("bets") or []]
    return summary, recent


class BetHistory:
    """
    Paged bet history with an optional status filter ('won', 'lost', 'active', ...).

    `load` starts over from the first page; `load_more` appends the next one
    while the service reports more.
    """

    def __init__(self, client, status: Optional[str] = None, page_size: int = 20):
        self.client = client
        self.status = status
        self.page_size = page_size
        self.bets: List[Dict[str, Any]] = []
        self.page = 0
        self.has_more = True

    async def _fetch(self, page: int) -> Optional[List[Dict[str, Any]]]:
        response = await self.client.get_user_bets(page, self.page_size, self.status)
        if not response.get("success"):
            logger.warning(f"Failed to load bets page {page}: {response.get('message')}")
            return None
        self.has_more = bool((response.get("pagination") or {}).get("hasNext"))
        return response.get("bets") or []

    async def load(self, status: Optional[str] = None) -> bool:
        if status is not None:
            self.status = None if status == "all" else status
        bets = await self._fetch(1)
        if bets is None:
            return False
        self.bets = bets
        self.page = 1
        return True

    async def load_more(self) -> bool:
        if not self.has_more:
            return False
        bets = await self._fetch(self.page + 1)
        if bets is None:
            return False
        self.bets.extend(bets)
        self.page += 1
        return True

    def rows(self) -> List[Dict[str, Any]]:
        return [summarize_bet(bet) for bet in self.bets]
