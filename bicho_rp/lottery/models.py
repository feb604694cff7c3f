"""Core data models for the BichoRP ledger."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bicho_rp.lottery.errors import MalformedSnapshot


class UserRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class BetStatus(str, Enum):
    """A bet is PENDING until a draw settles it; WON and LOST are terminal."""

    PENDING = "PENDING"
    WON = "WON"
    LOST = "LOST"


class DrawStatus(str, Enum):
    # SCHEDULED only appears in older saved ledgers; draws are created COMPLETED
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class Animal:
    """One of the 25 betting symbols and the block of numbers it owns."""

    id: int
    name: str
    numbers: Tuple[int, ...]
    multiplier: int
    icon: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "numbers": list(self.numbers),
            "multiplier": self.multiplier,
            "icon": self.icon,
        }


@dataclass(frozen=True)
class User:
    id: str
    username: str
    password: str
    rp_name: str
    balance: int
    role: UserRole
    created_at: int

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def with_balance(self, balance: int) -> "User":
        return replace(self, balance=balance)

    def to_dict(self, *, include_password: bool = True) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "username": self.username,
            "password": self.password,
            "rpName": self.rp_name,
            "balance": self.balance,
            "role": self.role.value,
            "createdAt": self.created_at,
        }
        if not include_password:
            del data["password"]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=_as_str(data["id"]),
            username=_as_str(data["username"]),
            # ledgers saved before passwords existed carry none
            password=_as_str(data.get("password", "")),
            rp_name=_as_str(data.get("rpName", data["username"])),
            balance=_as_number(data["balance"]),
            role=UserRole(data.get("role", UserRole.USER.value)),
            created_at=_as_number(data.get("createdAt", 0)),
        )


@dataclass(frozen=True)
class Bet:
    id: str
    user_id: str
    animal_id: int
    amount: int
    draw_id: Optional[str]
    status: BetStatus
    potential_win: int
    created_at: int

    @property
    def is_pending(self) -> bool:
        return self.status == BetStatus.PENDING

    def settle(self, draw_id: str, won: bool) -> "Bet":
        return replace(self, draw_id=draw_id, status=BetStatus.WON if won else BetStatus.LOST)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "animalId": self.animal_id,
            "amount": self.amount,
            "drawId": self.draw_id,
            "status": self.status.value,
            "potentialWin": self.potential_win,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bet":
        draw_id = data.get("drawId")
        return cls(
            id=_as_str(data["id"]),
            user_id=_as_str(data["userId"]),
            animal_id=_as_int(data["animalId"]),
            amount=_as_number(data["amount"]),
            draw_id=None if draw_id is None else _as_str(draw_id),
            status=BetStatus(data["status"]),
            potential_win=_as_number(data["potentialWin"]),
            created_at=_as_number(data.get("createdAt", 0)),
        )


@dataclass(frozen=True)
class Draw:
    id: str
    draw_time: int
    winning_number: Optional[int]
    winning_animal_id: Optional[int]
    status: DrawStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "drawTime": self.draw_time,
            "winningNumber": self.winning_number,
            "winningAnimalId": self.winning_animal_id,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Draw":
        number = data.get("winningNumber")
        animal_id = data.get("winningAnimalId")
        return cls(
            id=_as_str(data["id"]),
            draw_time=_as_number(data.get("drawTime", 0)),
            winning_number=None if number is None else _as_int(number),
            winning_animal_id=None if animal_id is None else _as_int(animal_id),
            status=DrawStatus(data.get("status", DrawStatus.COMPLETED.value)),
        )


@dataclass
class LedgerCollections:
    """The three mutable collections shared by the store, the disk and sync."""

    users: List[User]
    bets: List[Bet]
    draws: List[Draw]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "users": [u.to_dict() for u in self.users],
            "bets": [b.to_dict() for b in self.bets],
            "draws": [d.to_dict() for d in self.draws],
        }


def parse_collections(data: Any, animal_ids: Iterable[int]) -> LedgerCollections:
    """Parse and validate ``{users, bets, draws}`` from a decoded JSON object.

    Raises MalformedSnapshot for any shape or reference problem so callers can
    fall back (on load) or reject (on import) without partial state.
    """
    if not isinstance(data, dict):
        raise MalformedSnapshot("Snapshot must be a JSON object")

    known_animals = set(animal_ids)
    try:
        users = [User.from_dict(item) for item in _as_list(data.get("users", []))]
        bets = [Bet.from_dict(item) for item in _as_list(data.get("bets", []))]
        draws = [Draw.from_dict(item) for item in _as_list(data.get("draws", []))]
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise MalformedSnapshot(f"Invalid snapshot entry: {exc}") from exc

    for label, items in (("user", users), ("bet", bets), ("draw", draws)):
        ids = [item.id for item in items]
        if len(ids) != len(set(ids)):
            raise MalformedSnapshot(f"Duplicate {label} id in snapshot")

    usernames = [u.username.strip().lower() for u in users]
    if len(usernames) != len(set(usernames)):
        raise MalformedSnapshot("Duplicate username in snapshot")

    for bet in bets:
        if bet.animal_id not in known_animals:
            raise MalformedSnapshot(f"Bet {bet.id} references unknown animal {bet.animal_id}")
        if bet.is_pending != (bet.draw_id is None):
            raise MalformedSnapshot(f"Bet {bet.id} has inconsistent status {bet.status.value}")

    for draw in draws:
        if draw.winning_animal_id is not None and draw.winning_animal_id not in known_animals:
            raise MalformedSnapshot(f"Draw {draw.id} references unknown animal {draw.winning_animal_id}")

    return LedgerCollections(users=users, bets=bets, draws=draws)


def _as_list(value: Any) -> list:
    if not isinstance(value, list):
        raise TypeError(f"expected a list, got {type(value).__name__}")
    return value


def _as_str(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected a string, got {type(value).__name__}")
    return value


def _as_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected an integer, got {value!r}")
    return value


def _as_number(value: Any):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected a number, got {value!r}")
    return value
