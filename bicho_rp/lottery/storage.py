"""
JSON snapshot storage for the ledger with atomic writes.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from bicho_rp.lottery.auth import default_admin, find_user, require_protected_admin
from bicho_rp.lottery.errors import MalformedSnapshot
from bicho_rp.lottery.models import LedgerCollections, parse_collections
from bicho_rp.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class PersistedState:
    collections: LedgerCollections
    session_user_id: Optional[str] = None


def default_state(admin_password: str = "admin") -> PersistedState:
    """Fresh ledger: only the protected admin, no bets, no draws."""
    return PersistedState(
        collections=LedgerCollections(users=[default_admin(admin_password)], bets=[], draws=[]),
        session_user_id=None,
    )


def parse_persisted(data: Any, animal_ids: Iterable[int]) -> PersistedState:
    collections = parse_collections(data, animal_ids)
    require_protected_admin(collections.users)

    session_user_id = None
    current = data.get("currentUser")
    if isinstance(current, dict) and find_user(collections.users, current.get("id")) is not None:
        session_user_id = current["id"]
    return PersistedState(collections=collections, session_user_id=session_user_id)


def atomic_write(file_path: Path, data: Any) -> None:
    """Write JSON through a temporary file so readers never see half a ledger."""
    tmp_path = file_path.with_name(file_path.name + '.tmp')
    try:
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, file_path)
    except OSError:
        if tmp_path.exists():
            tmp_path.unlink()
        raise


class SnapshotStorage:
    """Reads the ledger at startup and rewrites it after every mutation."""

    def __init__(self, file_path: str | os.PathLike, admin_password: str = "admin") -> None:
        self.file_path = Path(file_path)
        self.admin_password = admin_password

    def load(self, animal_ids: Iterable[int]) -> PersistedState:
        """Load the saved ledger; missing or corrupt data yields the seeded default."""
        animal_ids = list(animal_ids)
        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            state = parse_persisted(data, animal_ids)
        except FileNotFoundError:
            logger.info(f"[SnapshotStorage] No ledger at {self.file_path}; starting with the default ledger")
            return default_state(self.admin_password)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, MalformedSnapshot) as exc:
            logger.warning(f"[SnapshotStorage] Unreadable ledger at {self.file_path} ({exc}); falling back to the default ledger")
            return default_state(self.admin_password)

        logger.info(
            f"[SnapshotStorage] Loaded ledger from {self.file_path}: "
            f"{len(state.collections.users)} users, {len(state.collections.bets)} bets, "
            f"{len(state.collections.draws)} draws"
        )
        return state

    def save(self, snapshot: Dict[str, Any]) -> None:
        """Persist a snapshot. Fire-and-forget: write failures are logged only."""
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write(self.file_path, snapshot)
        except (OSError, TypeError, ValueError) as exc:
            logger.error(f"[SnapshotStorage] Failed to persist ledger to {self.file_path}: {exc}")
