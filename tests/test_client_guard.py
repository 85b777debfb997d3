"""
Tests for AccessGuard and RouteGuard.
"""
import pytest

from barista.client.guard import (
    CHECKING,
    AccessDenied,
    AccessGuard,
    GuardStatus,
    RouteGuard,
)
from barista.client.session import SessionManager, SessionStatus
from barista.client.storage import MemorySessionStorage
from tests.fakes import FakeApi, gated, make_user


async def _signed_in(role="employee", overrides=None):
    api = FakeApi(user=make_user(role=role, overrides=overrides))
    manager = SessionManager(api, MemorySessionStorage())
    await manager.login("someone", "pw")
    return manager


class TestAccessGuard:
    """Test region guarding on (module, action)."""

    @pytest.mark.asyncio
    async def test_allowed_renders_children(self):
        manager = await _signed_in("employee")
        guard = AccessGuard(manager, "orders", "create")

        assert guard.check().allowed
        assert guard.render(lambda: "order form") == "order form"

    @pytest.mark.asyncio
    async def test_denied_without_fallback_returns_indicator(self):
        manager = await _signed_in("employee")
        guard = AccessGuard(manager, "employees", "delete")

        decision = guard.check()
        assert decision.status == GuardStatus.DENIED
        assert "employees" in decision.message

        rendered = guard.render(lambda: "delete button")
        assert isinstance(rendered, AccessDenied)
        assert rendered.module == "employees"
        assert rendered.action == "delete"

    @pytest.mark.asyncio
    async def test_denied_uses_fallback(self):
        manager = await _signed_in("employee")
        guard = AccessGuard(manager, "settings", "view")
        assert guard.render(lambda: "settings", fallback=lambda: "nothing here") == "nothing here"

    @pytest.mark.asyncio
    async def test_override_is_honoured(self):
        manager = await _signed_in(
            "employee", overrides=[{"module": "reports", "action": "view", "granted": True}]
        )
        assert AccessGuard(manager, "reports", "view").check().allowed

    @pytest.mark.asyncio
    async def test_loading_reports_checking(self):
        manager = SessionManager(FakeApi(), MemorySessionStorage())
        manager._status = SessionStatus.LOADING

        guard = AccessGuard(manager, "menu", "view")
        assert guard.check() == CHECKING
        assert guard.render(lambda: "menu") is CHECKING

    @pytest.mark.asyncio
    async def test_critical_module_waits_for_validation(self):
        director = await _signed_in("director")
        api = FakeApi(user=director.user)
        me = gated(director.user)
        api.me.side_effect = me

        restored = SessionManager(api, director._storage)
        await restored.restore_session()
        settings_guard = AccessGuard(restored, "settings", "edit")
        menu_guard = AccessGuard(restored, "menu", "edit")

        assert settings_guard.check() == CHECKING
        assert menu_guard.check().allowed

        me.gate.set()
        await restored.wait_until_validated()
        assert settings_guard.check().allowed

    def test_anonymous_is_denied(self):
        manager = SessionManager(FakeApi(), MemorySessionStorage())
        decision = AccessGuard(manager, "menu", "view").check()
        assert decision.status == GuardStatus.DENIED


class TestRouteGuard:
    """Test route-level guarding."""

    def test_unauthenticated_redirects_once(self):
        manager = SessionManager(FakeApi(), MemorySessionStorage())
        visits = []
        guard = RouteGuard(manager, visits.append)

        first = guard.check("/admin/menu")
        second = guard.check("/admin/menu")

        assert first.status == second.status == GuardStatus.REDIRECT
        assert first.redirect_to == "/login"
        assert visits == ["/login"]

    def test_no_redirect_when_already_on_login(self):
        manager = SessionManager(FakeApi(), MemorySessionStorage())
        visits = []
        RouteGuard(manager, visits.append).check("/login")
        assert visits == []

    @pytest.mark.asyncio
    async def test_role_mismatch_names_both_roles(self):
        manager = await _signed_in("employee")
        guard = RouteGuard(manager, lambda path: None, required_role="director")

        decision = guard.check("/admin/permissions")

        assert decision.status == GuardStatus.DENIED
        assert "director" in decision.message
        assert "employee" in decision.message

    @pytest.mark.asyncio
    async def test_legacy_role_name_matches(self):
        manager = await _signed_in("directeur")
        guard = RouteGuard(manager, lambda path: None, required_role="director")
        assert guard.check("/admin/permissions").allowed

    @pytest.mark.asyncio
    async def test_authenticated_without_role_requirement(self):
        manager = await _signed_in("employee")
        assert RouteGuard(manager, lambda path: None).check("/admin").allowed

    def test_loading_reports_checking(self):
        manager = SessionManager(FakeApi(), MemorySessionStorage())
        manager._status = SessionStatus.LOADING
        visits = []
        assert RouteGuard(manager, visits.append).check("/admin") == CHECKING
        assert visits == []
