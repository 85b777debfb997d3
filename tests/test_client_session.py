"""
Tests for the auth session manager.
"""
import asyncio

import pytest

from barista.client.session import SessionManager, SessionStatus
from barista.client.storage import FileSessionStorage, MemorySessionStorage
from barista.utils.exceptions import AuthError, NetworkError
from tests.fakes import FakeApi, gated, make_user


@pytest.fixture
def storage():
    return MemorySessionStorage()


@pytest.fixture
def api():
    return FakeApi(user=make_user(role="director", username="manon"))


@pytest.fixture
def manager(api, storage):
    return SessionManager(api, storage)


class TestLogin:
    """Test SessionManager.login()."""

    @pytest.mark.asyncio
    async def test_login_publishes_and_persists(self, manager, storage):
        session = await manager.login("manon", "pw")

        assert manager.status == SessionStatus.AUTHENTICATED
        assert manager.token == "tok-1"
        assert session.user.role == "director"
        assert storage.load().token == "tok-1"

    @pytest.mark.asyncio
    async def test_failed_login_stores_nothing(self, api, manager, storage):
        api.login.side_effect = AuthError()

        with pytest.raises(AuthError) as exc:
            await manager.login("manon", "wrong")

        assert exc.value.message == "Invalid credentials"
        assert manager.status == SessionStatus.ANONYMOUS
        assert storage.raw is None

    @pytest.mark.asyncio
    async def test_unreachable_server_raises_network_error(self, api, manager):
        api.login.side_effect = NetworkError()
        with pytest.raises(NetworkError):
            await manager.login("manon", "pw")
        assert manager.session is None


class TestRestore:
    """Test SessionManager.restore_session()."""

    @pytest.mark.asyncio
    async def test_login_then_reload_yields_same_user(self, api, manager, storage):
        await manager.login("manon", "pw")

        reloaded = SessionManager(api, storage)
        restored = await reloaded.restore_session()

        assert restored.user.model_dump() == manager.user.model_dump()
        assert reloaded.evaluator().has_role("director")
        assert await reloaded.wait_until_validated() == SessionStatus.AUTHENTICATED
        assert reloaded.user.role == manager.user.role

    @pytest.mark.asyncio
    async def test_restored_session_is_provisional_until_validated(
        self, api, manager, storage
    ):
        await manager.login("manon", "pw")
        me = gated(api.user)
        api.me.side_effect = me

        reloaded = SessionManager(api, storage)
        await reloaded.restore_session()

        assert reloaded.status == SessionStatus.PROVISIONAL
        assert reloaded.has_permission("menu", "edit") is True
        assert reloaded.has_permission("settings", "view") is False

        me.gate.set()
        await reloaded.wait_until_validated()
        assert reloaded.has_permission("settings", "view") is True

    @pytest.mark.asyncio
    async def test_rejected_token_clears_storage(self, api, manager, storage):
        await manager.login("manon", "pw")
        api.me.side_effect = AuthError("Token has been revoked")
        events = []

        reloaded = SessionManager(api, storage)
        reloaded.add_listener(lambda event, session: events.append(event))
        await reloaded.restore_session()
        await reloaded.wait_until_validated()

        assert reloaded.status == SessionStatus.ANONYMOUS
        assert storage.raw is None
        assert events == ["restored", "invalidated"]

    @pytest.mark.asyncio
    async def test_unreachable_server_logs_out_but_keeps_storage(
        self, api, manager, storage
    ):
        await manager.login("manon", "pw")
        api.me.side_effect = NetworkError()

        reloaded = SessionManager(api, storage)
        await reloaded.restore_session()
        await reloaded.wait_until_validated()

        assert reloaded.session is None
        assert storage.load() is not None

    @pytest.mark.asyncio
    async def test_corrupt_storage_is_purged(self, api):
        storage = MemorySessionStorage('{"auth_token": "tok"')
        manager = SessionManager(api, storage)

        assert await manager.restore_session() is None
        assert storage.raw is None
        assert manager.status == SessionStatus.ANONYMOUS
        api.me.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_undecodable_session_file_is_purged(self, api, tmp_path):
        path = tmp_path / "session.json"
        path.write_bytes(b"\xff\xfe garbage")
        manager = SessionManager(api, FileSessionStorage(path))

        assert await manager.restore_session() is None
        assert manager.status == SessionStatus.ANONYMOUS
        assert not path.exists()
        api.me.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_storage(self, manager):
        assert await manager.restore_session() is None
        assert manager.status == SessionStatus.ANONYMOUS

    @pytest.mark.asyncio
    async def test_validation_after_logout_is_discarded(self, api, manager, storage):
        await manager.login("manon", "pw")
        me = gated(api.user)
        api.me.side_effect = me

        reloaded = SessionManager(api, storage)
        await reloaded.restore_session()
        await reloaded.logout()
        me.gate.set()
        await asyncio.sleep(0)

        assert reloaded.status == SessionStatus.ANONYMOUS
        assert storage.raw is None


class TestLogout:
    """Test SessionManager.logout()."""

    @pytest.mark.asyncio
    async def test_logout_clears_even_when_server_fails(self, api, manager, storage):
        await manager.login("manon", "pw")
        api.logout.side_effect = NetworkError()

        await manager.logout()

        assert manager.session is None
        assert manager.status == SessionStatus.ANONYMOUS
        assert storage.raw is None
        api.logout.assert_awaited_once_with("tok-1")

    @pytest.mark.asyncio
    async def test_logout_bumps_generation(self, manager):
        await manager.login("manon", "pw")
        before = manager.generation
        await manager.logout()
        assert manager.generation > before

    @pytest.mark.asyncio
    async def test_logout_without_session_skips_server(self, api, manager):
        await manager.logout()
        api.logout.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_listener_failure_does_not_break_logout(self, manager):
        await manager.login("manon", "pw")

        def broken(event, session):
            raise RuntimeError("listener bug")

        manager.add_listener(broken)
        await manager.logout()
        assert manager.session is None


class TestRefresh:
    """Test SessionManager.refresh_user_data()."""

    @pytest.mark.asyncio
    async def test_refresh_applies_new_overrides(self, api, storage):
        api.user = make_user(role="employee")
        api.login.return_value = ("tok-1", api.user)
        manager = SessionManager(api, storage)
        await manager.login("lucas", "pw")
        assert manager.has_permission("reports", "view") is False

        api.me.return_value = make_user(
            role="employee",
            overrides=[{"module": "reports", "action": "view", "granted": True}],
        )
        await manager.refresh_user_data()

        assert manager.has_permission("reports", "view") is True
        assert storage.load().user.permission_overrides[0].module == "reports"

    @pytest.mark.asyncio
    async def test_network_failure_keeps_cached_user(self, api, manager):
        await manager.login("manon", "pw")
        api.me.side_effect = NetworkError()

        user = await manager.refresh_user_data()

        assert user.model_dump() == api.user.model_dump()
        assert manager.status == SessionStatus.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_rejected_token_tears_down(self, api, manager, storage):
        await manager.login("manon", "pw")
        api.me.side_effect = AuthError("Token expired")

        assert await manager.refresh_user_data() is None
        assert manager.session is None
        assert storage.raw is None

    @pytest.mark.asyncio
    async def test_refresh_racing_logout_is_dropped(self, api, manager, storage):
        await manager.login("manon", "pw")
        me = gated(make_user(role="employee"))
        api.me.side_effect = me

        pending = asyncio.create_task(manager.refresh_user_data())
        await asyncio.sleep(0)
        await manager.logout()
        me.gate.set()
        await pending

        assert manager.session is None
        assert storage.raw is None
