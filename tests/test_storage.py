"""
Tests for the JSON snapshot storage.
"""

import json

import pytest

from bicho_rp.lottery.ledger import LedgerStore
from bicho_rp.lottery.registry import ANIMALS
from bicho_rp.lottery.storage import SnapshotStorage, default_state

ANIMAL_IDS = [a.id for a in ANIMALS]


@pytest.fixture
def ledger_file(tmp_path):
    return tmp_path / "state" / "ledger.json"


class TestLoad:

    def test_missing_file_gives_default(self, ledger_file):
        state = SnapshotStorage(ledger_file, admin_password="s3nha").load(ANIMAL_IDS)
        users = state.collections.users
        assert [u.id for u in users] == ["1"]
        assert users[0].password == "s3nha"
        assert state.collections.bets == []
        assert state.collections.draws == []
        assert state.session_user_id is None

    @pytest.mark.parametrize(
        "content",
        [
            "{not json",
            "[]",
            json.dumps({"users": "nope", "bets": [], "draws": []}),
            json.dumps({"users": [], "bets": [], "draws": []}),
            json.dumps({"users": [{"id": "1", "username": "admin"}], "bets": [], "draws": []}),
        ],
    )
    def test_corrupt_file_gives_default(self, ledger_file, content):
        ledger_file.parent.mkdir(parents=True)
        ledger_file.write_text(content, encoding="utf-8")
        state = SnapshotStorage(ledger_file).load(ANIMAL_IDS)
        assert [u.username for u in state.collections.users] == ["admin"]

    def test_inconsistent_bet_gives_default(self, ledger_file):
        data = default_state().collections.to_dict()
        data["bets"] = [
            {
                "id": "b1", "userId": "1", "animalId": 9, "amount": 10, "drawId": "d1",
                "status": "PENDING", "potentialWin": 180, "createdAt": 0,
            }
        ]
        ledger_file.parent.mkdir(parents=True)
        ledger_file.write_text(json.dumps(data), encoding="utf-8")
        state = SnapshotStorage(ledger_file).load(ANIMAL_IDS)
        assert state.collections.bets == []

    def test_loads_legacy_ledger_without_passwords(self, ledger_file):
        blob = {
            "currentUser": {"id": "1", "username": "admin", "rpName": "Diretor Geral",
                            "balance": 1000000, "role": "ADMIN", "createdAt": 1},
            "users": [{"id": "1", "username": "admin", "rpName": "Diretor Geral",
                       "balance": 1000000, "role": "ADMIN", "createdAt": 1}],
            "bets": [],
            "draws": [{"id": "x", "drawTime": 5, "winningNumber": None,
                       "winningAnimalId": None, "status": "SCHEDULED"}],
            "animals": [],
        }
        ledger_file.parent.mkdir(parents=True)
        ledger_file.write_text(json.dumps(blob), encoding="utf-8")

        state = SnapshotStorage(ledger_file).load(ANIMAL_IDS)

        assert state.session_user_id == "1"
        assert state.collections.users[0].password == ""
        assert state.collections.draws[0].status.value == "SCHEDULED"


class TestSave:

    def test_round_trip_through_store(self, ledger_file):
        storage = SnapshotStorage(ledger_file)
        store = LedgerStore.from_storage(storage)
        store.login("admin", "admin")
        store.place_bet(9, 100)

        reloaded = LedgerStore.from_storage(SnapshotStorage(ledger_file))

        assert reloaded.current_user.id == "1"
        assert reloaded.current_user.balance == 1_000_000 - 100
        assert len(reloaded.get_bets()) == 1
        assert not (ledger_file.parent / "ledger.json.tmp").exists()

    def test_write_failure_is_swallowed(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory", encoding="utf-8")
        storage = SnapshotStorage(blocker / "ledger.json")
        storage.save({"users": []})
        assert blocker.read_text(encoding="utf-8") == "file, not a directory"
