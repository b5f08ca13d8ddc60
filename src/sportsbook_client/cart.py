import logging
import math
import re
from typing import Dict, List, Optional

from .context import SessionContext
from .models import BatchResult, CartItem, SubmissionResult
from .notifications import Notifier

logger = logging.getLogger(__name__)

INVALID_STAKE_MESSAGE = "Please enter a valid stake amount"
INVALID_BATCH_MESSAGE = "Please enter valid stakes for all bets"
LOGIN_REQUIRED_MESSAGE = "Please login to place bets"
ALREADY_PLACING_MESSAGE = "Bets are already being placed"


def parse_stake(text: Optional[str]) -> float:
    """Parse a user-entered stake. Anything unparseable comes back as NaN."""
    if text is None:
        return math.nan
    try:
        return float(str(text).strip())
    except ValueError:
        return math.nan


def is_valid_stake(amount: float) -> bool:
    return math.isfinite(amount) and amount > 0


def normalize_bet_type(bet_type: str) -> str:
    # "Match Winner" -> "match_winner"
    return re.sub(r"\s+", "_", bet_type.strip().lower())


def format_money(amount: float) -> str:
    """Two-decimal display string. Never parse this back into arithmetic."""
    return f"{amount:.2f}"


class CartAggregator:
    """
    The bet slip: pending selections in display order plus their stakes.

    Stakes are kept apart from the items, keyed by item id, and are dropped
    together with their item.
    """

    def __init__(self, context: SessionContext, notifier: Notifier):
        self.context = context
        self.client = context.client
        self.notifier = notifier
        self.items: List[CartItem] = []
        self.stakes: Dict[str, str] = {}
        self.is_open = False
        self.is_placing = False

    def __len__(self):
        return len(self.items)

    def get(self, item_id: str) -> Optional[CartItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def add(
        self,
        fixture_id: int,
        match: str,
        bet_type: str,
        selection: str,
        odds: float,
        home_team: str = "",
        away_team: str = "",
    ) -> CartItem:
        item_id = CartItem.make_id(fixture_id, bet_type, selection)
        existing = self.get(item_id)
        if existing is not None:
            return existing

        if not (math.isfinite(odds) and odds > 1.0):
            raise ValueError(f"Odds must be greater than 1.0, got {odds}")

        item = CartItem(
            id=item_id,
            fixture_id=fixture_id,
            match=match,
            bet_type=bet_type,
            selection=selection,
            odds=odds,
            home_team=home_team,
            away_team=away_team,
        )
        self.items.append(item)
        self.is_open = True
        return item

    def remove(self, item_id: str) -> bool:
        item = self.get(item_id)
        if item is None:
            return False
        self.items.remove(item)
        self.stakes.pop(item_id, None)
        return True

    def clear_all(self):
        self.items.clear()
        self.stakes.clear()

    def close(self):
        self.is_open = False

    def set_stake(self, item_id: str, text: str):
        if self.get(item_id) is None:
            raise KeyError(item_id)
        self.stakes[item_id] = text

    def stake_for(self, item_id: str) -> float:
        return parse_stake(self.stakes.get(item_id))

    def potential_win(self, item_id: str) -> float:
        item = self.get(item_id)
        stake = self.stake_for(item_id)
        if item is None or not is_valid_stake(stake):
            return 0.0
        return stake * item.odds

    def total_stake(self) -> float:
        total = 0.0
        for item in self.items:
            stake = self.stake_for(item.id)
            if is_valid_stake(stake):
                total += stake
        return total

    def total_potential_win(self) -> float:
        return sum(self.potential_win(item.id) for item in self.items)

    async def _place(self, item: CartItem, stake: float) -> SubmissionResult:
        try:
            response = await self.client.place_bet(
                fixture_id=item.fixture_id,
                bet_type=normalize_bet_type(item.bet_type),
                selection=item.selection.lower(),
                stake=stake,
                odds=item.odds,
            )
        except Exception as e:
            logger.error(f"Failed to place bet on {item.match}: {e}", exc_info=True)
            return SubmissionResult(item.id, False, "Failed to place bet. Please check your connection.")

        if response.get("success"):
            return SubmissionResult(item.id, True, response.get("message", "") or "")
        return SubmissionResult(item.id, False, response.get("message") or "Failed to place bet")

    async def submit_one(self, item_id: str) -> SubmissionResult:
        if self.is_placing:
            return SubmissionResult(item_id, False, ALREADY_PLACING_MESSAGE)

        item = self.get(item_id)
        if item is None:
            return SubmissionResult(item_id, False, "Selection is no longer in the bet slip")

        stake = self.stake_for(item_id)
        if not is_valid_stake(stake):
            self.notifier.error(INVALID_STAKE_MESSAGE)
            return SubmissionResult(item_id, False, INVALID_STAKE_MESSAGE)

        if not self.context.is_authenticated:
            self.notifier.error(LOGIN_REQUIRED_MESSAGE)
            return SubmissionResult(item_id, False, LOGIN_REQUIRED_MESSAGE)

        self.is_placing = True
        try:
            result = await self._place(item, stake)
            if result.success:
                potential = format_money(stake * item.odds)
                self.notifier.success(f"Bet placed successfully! Potential win: ${potential}")
                self.remove(item_id)
                await self.context.refresh_user()
            else:
                self.notifier.error(result.message)
            return result
        finally:
            self.is_placing = False

    async def submit_all(self) -> BatchResult:
        """
        Validate every stake, then place the bets one by one in display order.

        A failed bet doesn't stop the rest; only placed bets leave the slip.
        """
        if self.is_placing:
            return BatchResult(validation_error=ALREADY_PLACING_MESSAGE)

        if not self.items:
            return BatchResult()

        invalid = [item.id for item in self.items if not is_valid_stake(self.stake_for(item.id))]
        if invalid:
            self.notifier.error(INVALID_BATCH_MESSAGE)
            return BatchResult(validation_error=INVALID_BATCH_MESSAGE)

        if not self.context.is_authenticated:
            self.notifier.error(LOGIN_REQUIRED_MESSAGE)
            return BatchResult(validation_error=LOGIN_REQUIRED_MESSAGE)

        self.is_placing = True
        batch = BatchResult()
        try:
            for item in list(self.items):
                result = await self._place(item, self.stake_for(item.id))
                batch.results.append(result)
                if not result.success:
                    self.notifier.error(f"Failed to place bet on {item.match}: {result.message}")

            for result in batch.results:
                if result.success:
                    self.remove(result.item_id)

            if batch.succeeded:
                plural = "s" if batch.succeeded > 1 else ""
                self.notifier.success(f"Successfully placed {batch.succeeded} bet{plural}")
                await self.context.refresh_user()

            if batch.failed:
                plural = "s" if batch.failed > 1 else ""
                self.notifier.error(f"{batch.failed} bet{plural} failed to place")
        finally:
            self.is_placing = False

        logger.info(f"Bet slip submitted: {batch.succeeded} placed, {batch.failed} failed")
        return batch
