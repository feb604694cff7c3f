"""
Lottery Engine - draws the winning number and settles pending bets
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Sequence

from bicho_rp.lottery.models import Animal, Bet, BetStatus, Draw, DrawStatus, User
from bicho_rp.lottery.registry import MAX_NUMBER, MIN_NUMBER, AnimalRegistry
from bicho_rp.utils.common import generate_id, now_ms, random_number
from bicho_rp.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class DrawResult:
    """Everything a draw changes, computed before anything is applied."""

    draw: Draw
    animal: Animal
    users: List[User]
    bets: List[Bet]
    settled_bet_ids: List[str] = field(default_factory=list)
    credits: Dict[str, int] = field(default_factory=dict)

    @property
    def total_paid(self) -> int:
        return sum(self.credits.values())

    @property
    def winning_bets(self) -> List[Bet]:
        settled = set(self.settled_bet_ids)
        return [b for b in self.bets if b.id in settled and b.status == BetStatus.WON]


class LotteryEngine:
    """Picks a number from 1..100 and settles every pending bet against it"""

    def __init__(
        self,
        registry: AnimalRegistry,
        rng: Callable[[int, int], int] = random_number,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[..., str] = generate_id,
    ) -> None:
        self.registry = registry
        self.rng = rng
        self.clock = clock
        self.id_factory = id_factory

    def draw_number(self) -> int:
        number = self.rng(MIN_NUMBER, MAX_NUMBER)
        if not MIN_NUMBER <= number <= MAX_NUMBER:
            raise ValueError(f"Random source returned {number}, outside {MIN_NUMBER}..{MAX_NUMBER}")
        return number

    def execute_draw(
        self,
        users: Sequence[User],
        bets: Sequence[Bet],
        draws: Sequence[Draw],
    ) -> DrawResult:
        """Conduct a draw.

        Works on copies: the caller applies ``result.users``, ``result.bets``
        and prepends ``result.draw`` in one step, so no partial settlement is
        ever visible. An unmapped number raises before anything is built.
        """
        winning_number = self.draw_number()
        animal = self.registry.for_number(winning_number)

        draw = Draw(
            id=self.id_factory({d.id for d in draws}),
            draw_time=self.clock(),
            winning_number=winning_number,
            winning_animal_id=animal.id,
            status=DrawStatus.COMPLETED,
        )

        settled_ids: List[str] = []
        credits: Dict[str, int] = {}
        updated_bets: List[Bet] = []
        for bet in bets:
            if not bet.is_pending:
                updated_bets.append(bet)
                continue
            settled = bet.settle(draw.id, won=bet.animal_id == animal.id)
            updated_bets.append(settled)
            settled_ids.append(settled.id)
            if settled.status == BetStatus.WON:
                credits[settled.user_id] = credits.get(settled.user_id, 0) + settled.potential_win

        updated_users = [
            user.with_balance(user.balance + credits[user.id]) if user.id in credits else user
            for user in users
        ]

        known_ids = {u.id for u in users}
        orphaned = set(credits) - known_ids
        if orphaned:
            logger.warning(f"Winning bets of deleted users left uncredited: {sorted(orphaned)}")
            credits = {uid: amount for uid, amount in credits.items() if uid in known_ids}

        logger.info(
            f"Draw completed: {draw.id}, winning number: {winning_number} ({animal.name}), "
            f"settled: {len(settled_ids)}, winners: {len(credits)}, paid: {sum(credits.values())}"
        )

        return DrawResult(
            draw=draw,
            animal=animal,
            users=updated_users,
            bets=updated_bets,
            settled_bet_ids=settled_ids,
            credits=credits,
        )

    def get_draw_history(self, draws: Sequence[Draw], limit: int = 10) -> List[Dict]:
        """Get lottery draw history, most recent first"""
        history = []
        for draw in list(draws)[:limit]:
            item = draw.to_dict()
            animal = self.registry.find(draw.winning_animal_id) if draw.winning_animal_id is not None else None
            item["winningAnimalName"] = animal.name if animal else None
            item["winningAnimalIcon"] = animal.icon if animal else None
            history.append(item)
        return history
