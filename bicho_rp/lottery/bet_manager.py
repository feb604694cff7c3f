"""
Bet Manager - Handles bet validation and recording
"""

import math

from typing import Any, Callable, Dict, List, Sequence, Tuple

from bicho_rp.lottery.auth import find_user
from bicho_rp.lottery.errors import InsufficientBalance, InvalidAmount, NotAuthenticated
from bicho_rp.lottery.models import Bet, BetStatus, User
from bicho_rp.lottery.registry import AnimalRegistry
from bicho_rp.utils.common import generate_id, now_ms
from bicho_rp.utils.logger import get_logger

logger = get_logger(__name__)


class BetManager:
    """Validates wagers and turns them into PENDING bets"""

    def __init__(
        self,
        registry: AnimalRegistry,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[..., str] = generate_id,
    ):
        self.registry = registry
        self.clock = clock
        self.id_factory = id_factory

    def validate_bet_amount(self, amount: Any) -> int:
        """Return the amount if it is a positive whole number of credits"""
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            raise InvalidAmount()
        if amount <= 0 or not math.isfinite(amount) or amount != int(amount):
            raise InvalidAmount()
        return int(amount)

    def place_bet(
        self,
        users: Sequence[User],
        bets: Sequence[Bet],
        user_id: str,
        animal_id: int,
        amount: Any,
    ) -> Tuple[User, Bet]:
        """Validate a wager and return the debited user and the new bet.

        Nothing is mutated here; the caller swaps both results into the ledger.
        """
        user = find_user(users, user_id)
        if user is None:
            raise NotAuthenticated()

        amount = self.validate_bet_amount(amount)
        animal = self.registry.get(animal_id)
        if user.balance < amount:
            raise InsufficientBalance()

        bet = Bet(
            id=self.id_factory({b.id for b in bets}),
            user_id=user.id,
            animal_id=animal.id,
            amount=amount,
            draw_id=None,
            status=BetStatus.PENDING,
            potential_win=amount * animal.multiplier,
            created_at=self.clock(),
        )
        updated_user = user.with_balance(user.balance - amount)

        logger.info(f"Bet placed: {user.username} - {amount} on {animal.name} (potential win {bet.potential_win})")
        return updated_user, bet

    def get_user_bets(self, user_id: str, bets: Sequence[Bet]) -> List[Bet]:
        """Bets of one user, most recent first"""
        return [bet for bet in reversed(bets) if bet.user_id == user_id]

    def get_user_stats(self, user_id: str, bets: Sequence[Bet]) -> Dict[str, Any]:
        """Get statistics for a specific user"""
        user_bets = self.get_user_bets(user_id, bets)
        won = [bet for bet in user_bets if bet.status == BetStatus.WON]
        settled = [bet for bet in user_bets if not bet.is_pending]
        return {
            "totalBets": len(user_bets),
            "pendingBets": len(user_bets) - len(settled),
            "totalWagered": sum(bet.amount for bet in user_bets),
            "wins": len(won),
            "totalWon": sum(bet.potential_win for bet in won),
            "winRate": len(won) / max(1, len(settled)) * 100,
        }

    def format_bet_summary(self, bet: Bet) -> Dict[str, Any]:
        """Format bet information for API response"""
        summary = bet.to_dict()
        animal = self.registry.find(bet.animal_id)
        summary["animalName"] = animal.name if animal else None
        summary["animalIcon"] = animal.icon if animal else None
        return summary
