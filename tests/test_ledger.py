"""
Tests for the ledger store: session, mutations, persistence hook and listeners.
"""

import pytest

from bicho_rp.lottery.auth import NewUserSpec
from bicho_rp.lottery.engine import LotteryEngine
from bicho_rp.lottery.errors import (
    AdminRequired,
    DuplicateUsername,
    InsufficientBalance,
    InvalidAmount,
    InvalidPassword,
    MalformedSnapshot,
    NotAuthenticated,
    UnknownAnimal,
    UserNotFound,
)
from bicho_rp.lottery.ledger import LedgerStore
from bicho_rp.lottery.models import BetStatus, UserRole

from conftest import SequenceRng, fixed_clock


def play(store, player, animal_id, amount):
    """Place a bet as ``player`` and return to the admin session."""
    store.login(player.username, player.password)
    bet = store.place_bet(animal_id, amount)
    store.login("admin", "admin")
    return bet


class TestSession:

    def test_starts_logged_out(self, store):
        assert store.current_user is None

    def test_login_and_logout(self, store):
        user = store.login("  ADMIN ", "admin")
        assert user.id == "1"
        assert store.current_user.id == "1"
        store.logout()
        assert store.current_user is None

    def test_logout_always_succeeds(self, store):
        store.logout()
        store.logout()
        assert store.current_user is None

    def test_failed_login_keeps_session(self, admin_store):
        with pytest.raises(InvalidPassword):
            admin_store.login("admin", "nope")
        with pytest.raises(UserNotFound):
            admin_store.login("ghost", "admin")
        assert admin_store.current_user.id == "1"

    def test_current_user_follows_balance(self, admin_store, player):
        admin_store.login("marcos_silva", "segredo")
        admin_store.place_bet(9, 100)
        assert admin_store.current_user.balance == 900
        snapshot = admin_store.snapshot()
        entry = next(u for u in snapshot["users"] if u["id"] == player.id)
        assert snapshot["currentUser"]["balance"] == entry["balance"] == 900


class TestPlaceBet:

    def test_requires_session(self, store):
        with pytest.raises(NotAuthenticated):
            store.place_bet(9, 100)

    def test_debits_and_appends(self, admin_store, player):
        bet = play(admin_store, player, 9, 100)
        assert bet.status == BetStatus.PENDING
        assert bet.draw_id is None
        assert bet.potential_win == 1800
        users = {u.id: u for u in admin_store.get_users()}
        assert users[player.id].balance == 900
        assert admin_store.get_bets()[0].id == bet.id

    @pytest.mark.parametrize(
        "animal_id, amount, error",
        [
            (9, 0, InvalidAmount),
            (9, -5, InvalidAmount),
            (9, 1001, InsufficientBalance),
            (42, 10, UnknownAnimal),
        ],
    )
    def test_rejection_leaves_store_unchanged(self, admin_store, player, saved, animal_id, amount, error):
        admin_store.login("marcos_silva", "segredo")
        before = admin_store.snapshot()
        saves = len(saved)
        events = []
        admin_store.add_listener("bet_placed", events.append)

        with pytest.raises(error):
            admin_store.place_bet(animal_id, amount)

        assert admin_store.snapshot() == before
        assert len(saved) == saves
        assert events == []

    def test_players_see_only_own_bets(self, admin_store, player):
        other = admin_store.create_user(NewUserSpec(username="bia", rp_name="Bia", password="b", balance=100))
        play(admin_store, player, 9, 10)
        play(admin_store, other, 1, 10)

        admin_store.login("bia", "b")
        assert [b.user_id for b in admin_store.get_bets()] == [other.id]
        admin_store.login("admin", "admin")
        assert len(admin_store.get_bets()) == 2


class TestExecuteDraw:

    def test_requires_admin(self, admin_store, player):
        admin_store.login("marcos_silva", "segredo")
        with pytest.raises(AdminRequired):
            admin_store.execute_draw()
        admin_store.logout()
        with pytest.raises(NotAuthenticated):
            admin_store.execute_draw()

    def test_winning_scenario(self, admin_store, player):
        bet = play(admin_store, player, 9, 100)

        result = admin_store.execute_draw()

        assert result.draw.winning_number == 34
        settled = next(b for b in admin_store.get_bets() if b.id == bet.id)
        assert settled.status == BetStatus.WON
        assert settled.draw_id == result.draw.id
        balance = next(u.balance for u in admin_store.get_users() if u.id == player.id)
        assert balance == 1000 - 100 + 100 * 18

    def test_losing_scenario(self, registry, saved):
        engine = LotteryEngine(registry, rng=SequenceRng(50), clock=fixed_clock)
        store = LedgerStore(registry, save=saved.append, engine=engine)
        store.login("admin", "admin")
        player = store.create_user(NewUserSpec(username="p", rp_name="P", password="p", balance=1000))
        play(store, player, 9, 100)

        store.execute_draw()

        bet = store.get_bets()[0]
        assert bet.status == BetStatus.LOST
        assert next(u.balance for u in store.get_users() if u.id == player.id) == 900

    def test_draws_newest_first(self, registry):
        engine = LotteryEngine(registry, rng=SequenceRng(1, 2, 3))
        store = LedgerStore(registry, engine=engine)
        store.login("admin", "admin")
        ids = [store.execute_draw().draw.id for _ in range(3)]
        assert [d.id for d in store.get_draws()] == list(reversed(ids))
        assert [d.winning_number for d in store.get_draws(limit=2)] == [3, 2]

    def test_second_draw_ignores_settled_bets(self, admin_store, player):
        play(admin_store, player, 9, 100)
        first = admin_store.execute_draw()
        second = admin_store.execute_draw()
        assert second.settled_bet_ids == []
        assert admin_store.get_bets()[0].draw_id == first.draw.id

    def test_admin_session_sees_own_credit(self, admin_store):
        admin_store.place_bet(9, 1000)
        admin_store.execute_draw()
        assert admin_store.current_user.balance == 1_000_000 - 1000 + 18_000


class TestUsers:

    def test_create_requires_admin(self, admin_store, player):
        admin_store.login("marcos_silva", "segredo")
        with pytest.raises(AdminRequired):
            admin_store.create_user(NewUserSpec(username="x", rp_name="X"))

    def test_duplicate_leaves_store_unchanged(self, admin_store, player, saved):
        before = admin_store.snapshot()
        saves = len(saved)
        with pytest.raises(DuplicateUsername):
            admin_store.create_user(NewUserSpec(username=" MARCOS_silva ", rp_name="Clone"))
        assert admin_store.snapshot() == before
        assert len(saved) == saves

    def test_users_keep_creation_order(self, admin_store, player):
        other = admin_store.create_user(NewUserSpec(username="bia", rp_name="Bia"))
        assert [u.id for u in admin_store.get_users()] == ["1", player.id, other.id]

    def test_delete_protected_admin_is_noop(self, admin_store, saved):
        saves = len(saved)
        assert admin_store.delete_user("1") is False
        assert len(saved) == saves
        assert admin_store.current_user.id == "1"

    def test_delete_keeps_bets(self, admin_store, player):
        bet = play(admin_store, player, 9, 10)
        assert admin_store.delete_user(player.id) is True
        assert player.id not in {u.id for u in admin_store.get_users()}
        assert admin_store.get_bets()[0].id == bet.id
        result = admin_store.execute_draw()
        assert result.bets[0].status == BetStatus.WON
        assert result.total_paid == 0

    def test_deleting_logged_in_user_ends_session(self, store):
        store.login("admin", "admin")
        promoted = store.create_user(NewUserSpec(username="chefe", rp_name="Chefe", password="c", role="ADMIN"))
        store.login("chefe", "c")
        store.delete_user(promoted.id)
        assert store.current_user is None


class TestPersistenceAndEvents:

    def test_saves_after_each_mutation(self, store, saved):
        store.login("admin", "admin")
        store.place_bet(1, 10)
        store.execute_draw()
        assert len(saved) == 3
        last = saved[-1]
        assert set(last) == {"currentUser", "users", "bets", "draws", "animals"}
        assert last["bets"][0]["status"] in ("WON", "LOST")
        assert len(last["animals"]) == 25

    def test_save_failure_does_not_break_mutation(self, registry):
        def broken(snapshot):
            raise OSError("disk full")

        store = LedgerStore(registry, save=broken)
        store.login("admin", "admin")
        store.place_bet(1, 10)
        assert store.current_user.balance == 1_000_000 - 10

    def test_listeners(self, admin_store, player):
        events = []
        for name in ("bet_placed", "draw_completed", "users_update", "session_update"):
            admin_store.add_listener(name, lambda payload, name=name: events.append((name, payload)))

        play(admin_store, player, 9, 10)
        admin_store.execute_draw()

        names = [name for name, _ in events]
        assert names == ["session_update", "bet_placed", "session_update", "draw_completed"]
        bet_payload = events[1][1]
        assert bet_payload["user"]["balance"] == 990
        assert "password" not in bet_payload["user"]
        assert events[3][1]["totalPaid"] == 180

    def test_failing_listener_is_isolated(self, admin_store):
        def explode(payload):
            raise RuntimeError("boom")

        admin_store.add_listener("bet_placed", explode)
        admin_store.place_bet(1, 10)
        assert len(admin_store.get_bets()) == 1


class TestSync:

    def test_round_trip_between_instances(self, admin_store, player, registry):
        play(admin_store, player, 9, 100)
        admin_store.execute_draw()
        blob = admin_store.export_sync()

        other = LedgerStore(registry)
        other.login("admin", "admin")
        other.import_sync(blob)

        other.login("marcos_silva", "segredo")
        assert other.current_user.balance == 2700
        assert len(other.get_bets()) == 1
        assert len(other.get_draws()) == 1

    def test_import_replaces_wholesale(self, admin_store, player, registry):
        fresh = LedgerStore(registry)
        fresh.login("admin", "admin")
        blob = fresh.export_sync()

        admin_store.place_bet(1, 10)
        admin_store.import_sync(blob)

        assert admin_store.current_user.id == "1"
        assert len(admin_store.get_users()) == 1
        assert admin_store.get_bets() == []

    def test_import_clears_session_of_missing_user(self, admin_store, registry):
        fresh = LedgerStore(registry)
        fresh.login("admin", "admin")
        blob = fresh.export_sync()
        admin_store.create_user(NewUserSpec(username="gerente", rp_name="Gerente", password="pw", role=UserRole.ADMIN))
        admin_store.login("gerente", "pw")

        admin_store.import_sync(blob)

        assert admin_store.current_user is None

    def test_export_requires_admin(self, admin_store, player):
        admin_store.login("marcos_silva", "segredo")
        with pytest.raises(AdminRequired):
            admin_store.export_sync()
        admin_store.logout()
        with pytest.raises(NotAuthenticated):
            admin_store.export_sync()

    def test_import_requires_admin(self, admin_store, player, saved):
        blob = admin_store.export_sync()
        admin_store.login("marcos_silva", "segredo")
        before = admin_store.snapshot()
        saves = len(saved)

        with pytest.raises(AdminRequired):
            admin_store.import_sync(blob)
        admin_store.logout()
        with pytest.raises(NotAuthenticated):
            admin_store.import_sync(blob)

        assert admin_store.snapshot()["users"] == before["users"]
        assert len(saved) == saves + 1

    @pytest.mark.parametrize("blob", ["", "not base64!!", "eyJmb28iOiAxfQ=="])
    def test_malformed_import_is_rejected(self, admin_store, player, saved, blob):
        before = admin_store.snapshot()
        saves = len(saved)
        with pytest.raises(MalformedSnapshot):
            admin_store.import_sync(blob)
        assert admin_store.snapshot() == before
        assert len(saved) == saves


class TestDashboard:

    def test_player_dashboard(self, admin_store, player):
        play(admin_store, player, 9, 100)
        admin_store.execute_draw()
        admin_store.login("marcos_silva", "segredo")

        dashboard = admin_store.dashboard()

        assert dashboard["user"]["balance"] == 2700
        assert dashboard["betCount"] == 1
        assert dashboard["latestDraw"]["winningAnimalName"] == "Cobra"
        assert dashboard["stats"]["wins"] == 1
        assert dashboard["totalUsers"] is None
        assert dashboard["creditsInCirculation"] is None

    def test_admin_dashboard_counts_all_bets(self, admin_store, player):
        play(admin_store, player, 9, 100)
        dashboard = admin_store.dashboard()
        assert dashboard["betCount"] == 1
        assert dashboard["pendingBets"] == 1
        assert dashboard["latestDraw"] is None
        assert dashboard["totalUsers"] == 2
        assert dashboard["creditsInCirculation"] == 1_000_000 + 900

    def test_requires_session(self, store):
        with pytest.raises(NotAuthenticated):
            store.dashboard()
