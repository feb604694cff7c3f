"""In-process ledger store: the single owner of users, bets, draws and the session."""

from __future__ import annotations

from collections import defaultdict
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from bicho_rp.lottery import auth
from bicho_rp.lottery.auth import NewUserSpec
from bicho_rp.lottery.bet_manager import BetManager
from bicho_rp.lottery.engine import DrawResult, LotteryEngine
from bicho_rp.lottery.errors import AdminRequired, NotAuthenticated
from bicho_rp.lottery.models import Bet, Draw, LedgerCollections, User
from bicho_rp.lottery.registry import AnimalRegistry
from bicho_rp.lottery.storage import PersistedState, SnapshotStorage, default_state
from bicho_rp.lottery.sync_codec import export_snapshot, import_snapshot
from bicho_rp.utils.common import format_credits
from bicho_rp.utils.logger import get_logger

logger = get_logger(__name__)

SaveCallback = Callable[[Dict[str, Any]], None]

EVENT_TYPES = (
    "session_update",
    "bet_placed",
    "draw_completed",
    "users_update",
    "ledger_replaced",
)


class LedgerStore:
    """Shared ledger exposing only the login/bet/draw/user/sync operations.

    Every successful mutation persists the whole snapshot through ``save`` and
    notifies listeners. Rejected operations leave the ledger untouched and do
    neither. The session keeps only the logged-in user's id; the user record
    is always read from ``users``.
    """

    def __init__(
        self,
        registry: Optional[AnimalRegistry] = None,
        *,
        state: Optional[PersistedState] = None,
        save: Optional[SaveCallback] = None,
        bet_manager: Optional[BetManager] = None,
        engine: Optional[LotteryEngine] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._lock = Lock()
        self._listeners: Dict[str, List[Callable[[dict | None], None]]] = defaultdict(list)
        self.registry = registry or AnimalRegistry()
        self._save = save
        self._clock_kwargs = {"clock": clock} if clock else {}
        self.bet_manager = bet_manager or BetManager(self.registry, **self._clock_kwargs)
        self.engine = engine or LotteryEngine(self.registry, **self._clock_kwargs)

        state = state or default_state()
        self._users: List[User] = list(state.collections.users)
        self._bets: List[Bet] = list(state.collections.bets)
        self._draws: List[Draw] = list(state.collections.draws)
        self._session_user_id: Optional[str] = state.session_user_id
        logger.info(
            f"[LedgerStore] Initialized with {len(self._users)} users, {len(self._bets)} bets, {len(self._draws)} draws"
        )

    @classmethod
    def from_storage(cls, storage: SnapshotStorage, registry: Optional[AnimalRegistry] = None, **kwargs) -> "LedgerStore":
        registry = registry or AnimalRegistry()
        state = storage.load(animal.id for animal in registry)
        return cls(registry, state=state, save=storage.save, **kwargs)

    # ------------------------------------------------------------------
    # Listener management
    # ------------------------------------------------------------------
    def add_listener(self, event_type: str, callback: Callable[[dict | None], None]) -> None:
        with self._lock:
            self._listeners[event_type].append(callback)
            logger.debug(f"[LedgerStore] Adding listener for event_type={event_type}, callback={callback}")

    def _emit(self, event_type: str, payload: dict | None) -> None:
        listeners = list(self._listeners.get(event_type, []))
        for callback in listeners:
            try:
                callback(payload)
            except Exception as exc:  # pragma: no cover
                logger.error("Listener for %s failed: %s", event_type, exc)

    def _persist(self) -> None:
        # caller holds the lock
        if self._save is None:
            return
        try:
            self._save(self._serialize_snapshot())
        except Exception as exc:
            logger.error("[LedgerStore] save failed: %s", exc)

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------
    @property
    def current_user(self) -> Optional[User]:
        with self._lock:
            return auth.find_user(self._users, self._session_user_id)

    def login(self, username: str, password: str) -> User:
        with self._lock:
            user = auth.login(self._users, username, password)
            self._session_user_id = user.id
            self._persist()
        logger.info(f"[LedgerStore] {user.username} logged in")
        self._emit("session_update", self._serialize_user(user))
        return user

    def logout(self) -> None:
        with self._lock:
            previous = self._session_user_id
            self._session_user_id = None
            self._persist()
        logger.info(f"[LedgerStore] Session closed (was {previous})")
        self._emit("session_update", None)

    def _require_user(self) -> User:
        user = auth.find_user(self._users, self._session_user_id)
        if user is None:
            raise NotAuthenticated()
        return user

    def _require_admin(self) -> User:
        user = self._require_user()
        if not user.is_admin:
            raise AdminRequired()
        return user

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def create_user(self, spec: NewUserSpec) -> User:
        with self._lock:
            self._require_admin()
            user = auth.create_user(self._users, spec, **self._clock_kwargs)
            self._users = self._users + [user]
            self._persist()
            payload = self._serialize_users()
        logger.info(f"[LedgerStore] Created user {user.username} ({user.rp_name}) with {format_credits(user.balance)}")
        self._emit("users_update", payload)
        return user

    def delete_user(self, user_id: str) -> bool:
        with self._lock:
            self._require_admin()
            remaining, deleted = auth.delete_user(self._users, user_id)
            if not deleted:
                return False
            self._users = remaining
            if self._session_user_id == user_id:
                self._session_user_id = None
            self._persist()
            payload = self._serialize_users()
        logger.info(f"[LedgerStore] Deleted user {user_id}; their bets stay in the ledger")
        self._emit("users_update", payload)
        return True

    def get_users(self) -> List[User]:
        with self._lock:
            self._require_admin()
            return list(self._users)

    # ------------------------------------------------------------------
    # Bets
    # ------------------------------------------------------------------
    def place_bet(self, animal_id: int, amount: Any) -> Bet:
        with self._lock:
            user = self._require_user()
            updated_user, bet = self.bet_manager.place_bet(self._users, self._bets, user.id, animal_id, amount)
            self._users = [updated_user if u.id == updated_user.id else u for u in self._users]
            self._bets = self._bets + [bet]
            self._persist()
            payload = {
                "bet": self.bet_manager.format_bet_summary(bet),
                "user": self._serialize_user(updated_user),
            }
        self._emit("bet_placed", payload)
        return bet

    def get_bets(self) -> List[Bet]:
        """Bets visible to the session, most recent first: all for admins, own otherwise."""
        with self._lock:
            user = self._require_user()
            if user.is_admin:
                return list(reversed(self._bets))
            return self.bet_manager.get_user_bets(user.id, self._bets)

    # ------------------------------------------------------------------
    # Draws
    # ------------------------------------------------------------------
    def execute_draw(self) -> DrawResult:
        with self._lock:
            self._require_admin()
            result = self.engine.execute_draw(self._users, self._bets, self._draws)
            self._users = result.users
            self._bets = result.bets
            self._draws = [result.draw] + self._draws
            self._persist()
            payload = {
                "draw": self.engine.get_draw_history([result.draw], limit=1)[0],
                "settledBets": len(result.settled_bet_ids),
                "totalPaid": result.total_paid,
            }
        logger.info(f"[LedgerStore] SORTEIO REALIZADO: {result.animal.name.upper()} ({result.draw.winning_number})")
        self._emit("draw_completed", payload)
        return result

    def get_draws(self, limit: Optional[int] = None) -> List[Draw]:
        with self._lock:
            draws = list(self._draws)
        if limit is not None:
            return draws[:limit]
        return draws

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------
    def export_sync(self) -> str:
        """Admin-only: the blob carries every user's password."""
        with self._lock:
            self._require_admin()
            return export_snapshot(self._collections())

    def import_sync(self, blob: str) -> LedgerCollections:
        """Replace users, bets and draws with the blob's content; no merge."""
        with self._lock:
            self._require_admin()
            collections = import_snapshot(blob, (animal.id for animal in self.registry))
            auth.require_protected_admin(collections.users)
            self._users = list(collections.users)
            self._bets = list(collections.bets)
            self._draws = list(collections.draws)
            if auth.find_user(self._users, self._session_user_id) is None:
                self._session_user_id = None
            self._persist()
            payload = self._serialize_public()
        logger.info(
            f"[LedgerStore] Imported ledger: {len(collections.users)} users, "
            f"{len(collections.bets)} bets, {len(collections.draws)} draws"
        )
        self._emit("ledger_replaced", payload)
        return collections

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return self._serialize_snapshot()

    def dashboard(self) -> Dict[str, Any]:
        with self._lock:
            user = self._require_user()
            visible = self._bets if user.is_admin else [b for b in self._bets if b.user_id == user.id]
            latest = self.engine.get_draw_history(self._draws, limit=1)
            return {
                "user": self._serialize_user(user),
                "betCount": len(visible),
                "pendingBets": sum(1 for b in visible if b.is_pending),
                "latestDraw": latest[0] if latest else None,
                "stats": self.bet_manager.get_user_stats(user.id, self._bets),
                "totalDraws": len(self._draws),
                "totalUsers": len(self._users) if user.is_admin else None,
                "creditsInCirculation": sum(u.balance for u in self._users) if user.is_admin else None,
            }

    def counts(self) -> Dict[str, int]:
        with self._lock:
            return {"users": len(self._users), "bets": len(self._bets), "draws": len(self._draws)}

    # ------------------------------------------------------------------
    # Serialization helpers
    # ------------------------------------------------------------------
    def _collections(self) -> LedgerCollections:
        return LedgerCollections(users=list(self._users), bets=list(self._bets), draws=list(self._draws))

    def _serialize_snapshot(self) -> Dict[str, Any]:
        current = auth.find_user(self._users, self._session_user_id)
        data = self._collections().to_dict()
        data["currentUser"] = current.to_dict() if current else None
        data["animals"] = self.registry.to_list()
        return data

    def _serialize_public(self) -> Dict[str, Any]:
        return {
            "users": [self._serialize_user(u) for u in self._users],
            "bets": [b.to_dict() for b in self._bets],
            "draws": [d.to_dict() for d in self._draws],
        }

    def _serialize_user(self, user: User) -> Dict[str, Any]:
        return user.to_dict(include_password=False)

    def _serialize_users(self) -> Dict[str, Any]:
        return {"users": [self._serialize_user(u) for u in self._users], "totalUsers": len(self._users)}
