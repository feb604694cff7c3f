"""
Session/Auth - resolves credentials to users and manages user records
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from bicho_rp.lottery.errors import (
    DuplicateUsername,
    InvalidPassword,
    InvalidUserSpec,
    MalformedSnapshot,
    UserNotFound,
)
from bicho_rp.lottery.models import User, UserRole
from bicho_rp.utils.common import generate_id, now_ms
from bicho_rp.utils.logger import get_logger

logger = get_logger(__name__)

PROTECTED_ADMIN_ID = "1"
INITIAL_CREDITS = 5000


@dataclass
class NewUserSpec:
    """Fields an administrator fills in to register a player."""

    username: str
    rp_name: str
    password: str = ""
    role: UserRole = UserRole.USER
    balance: int = INITIAL_CREDITS


def normalize_username(username: str) -> str:
    return username.strip().lower()


def find_user_by_username(users: Sequence[User], username: str) -> Optional[User]:
    wanted = normalize_username(username)
    for user in users:
        if normalize_username(user.username) == wanted:
            return user
    return None


def find_user(users: Sequence[User], user_id: Optional[str]) -> Optional[User]:
    if user_id is None:
        return None
    for user in users:
        if user.id == user_id:
            return user
    return None


def login(users: Sequence[User], username: str, password: str) -> User:
    """Match a credential pair against the user list.

    Usernames compare trimmed and case-insensitively; passwords compare
    trimmed but otherwise exactly.
    """
    user = find_user_by_username(users, username)
    if user is None:
        raise UserNotFound()
    if password.strip() != user.password.strip():
        raise InvalidPassword()
    return user


def create_user(
    users: Sequence[User],
    spec: NewUserSpec,
    *,
    clock: Callable[[], int] = now_ms,
    id_factory: Callable[..., str] = generate_id,
) -> User:
    username = spec.username.strip()
    if not username:
        raise InvalidUserSpec("Informe um nome de usuário.")
    if isinstance(spec.balance, bool) or not isinstance(spec.balance, int):
        raise InvalidUserSpec("Saldo inicial inválido.")
    try:
        role = UserRole(spec.role)
    except ValueError:
        raise InvalidUserSpec(f"Papel desconhecido: {spec.role}") from None
    if find_user_by_username(users, username) is not None:
        raise DuplicateUsername()

    return User(
        id=id_factory({u.id for u in users}),
        username=username,
        password=spec.password.strip(),
        rp_name=spec.rp_name.strip() or username,
        balance=spec.balance,
        role=role,
        created_at=clock(),
    )


def delete_user(users: Sequence[User], user_id: str) -> Tuple[List[User], bool]:
    """Return the user list without ``user_id`` and whether anything was removed.

    The protected admin is never removed. Bets of a removed user stay in the
    ledger untouched.
    """
    if user_id == PROTECTED_ADMIN_ID:
        logger.warning("Refusing to delete protected admin user %s", user_id)
        return list(users), False
    remaining = [u for u in users if u.id != user_id]
    return remaining, len(remaining) != len(users)


def require_protected_admin(users: Sequence[User]) -> None:
    """Loaded or imported user lists must still contain the protected admin."""
    admin = find_user(users, PROTECTED_ADMIN_ID)
    if admin is None or not admin.is_admin:
        raise MalformedSnapshot(f"Snapshot lacks the protected admin user {PROTECTED_ADMIN_ID}")


def default_admin(password: str = "admin", *, clock: Callable[[], int] = now_ms) -> User:
    return User(
        id=PROTECTED_ADMIN_ID,
        username="admin",
        password=password,
        rp_name="Diretor Geral",
        balance=1_000_000,
        role=UserRole.ADMIN,
        created_at=clock(),
    )
