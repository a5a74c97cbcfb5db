"""
Tests for the token store and the token lifecycle manager
"""
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from courier_sync.core.exceptions import AuthError, ErrorCode, UpstreamFetchError
from courier_sync.db.models import AuthToken
from courier_sync.domain.services.external.auth_api import TokenGrant
from courier_sync.domain.services.token_service import TokenManager, TokenStore
from tests.conftest import WORKDAY_MORNING, epoch_ms, fixed_clock

NOW_MS = epoch_ms(WORKDAY_MORNING)
MINUTE_MS = 60 * 1000


@pytest.fixture
def auth_client() -> AsyncMock:
    client = AsyncMock()
    client.exchange_refresh_token.return_value = TokenGrant(
        access_token="new-access",
        refresh_token="new-refresh",
        expires_in=3600,
    )
    return client


@pytest.fixture
def make_manager(session_factory, auth_client):
    def _make(bootstrap_refresh_token: str = "") -> TokenManager:
        return TokenManager(
            session_factory,
            auth_client,
            bootstrap_refresh_token=bootstrap_refresh_token,
            clock=fixed_clock(WORKDAY_MORNING),
        )
    return _make


async def _store(db_session, token_id: int, access: str, refresh: str, expires_at: int) -> None:
    db_session.add(
        AuthToken(
            id=token_id,
            access_token=access,
            refresh_token=refresh,
            expires_at=expires_at,
            updated_at=NOW_MS - 60 * MINUTE_MS,
        )
    )
    await db_session.commit()


async def _count_tokens(db_session) -> int:
    return (await db_session.execute(select(func.count()).select_from(AuthToken))).scalar_one()


class TestTokenStore:

    @pytest.mark.unit
    async def test_replace_keeps_a_single_record(self, db_session):
        store = TokenStore(db_session)

        await store.replace("a1", "r1", NOW_MS + 1000, NOW_MS)
        await store.replace("a2", "r2", NOW_MS + 2000, NOW_MS + 1)

        assert await _count_tokens(db_session) == 1
        latest = await store.get_latest()
        assert latest.access_token == "a2"
        assert latest.refresh_token == "r2"

    @pytest.mark.unit
    async def test_replace_drops_stray_records(self, db_session):
        await _store(db_session, 7, "old", "old-refresh", NOW_MS - MINUTE_MS)

        await TokenStore(db_session).replace("a1", "r1", NOW_MS + 1000, NOW_MS)

        assert await _count_tokens(db_session) == 1

    @pytest.mark.unit
    async def test_get_valid_requires_expiry_strictly_in_future(self, db_session):
        await _store(db_session, 1, "edge", "r", NOW_MS)

        assert await TokenStore(db_session).get_valid(NOW_MS) is None


class TestTokenManager:

    @pytest.mark.unit
    async def test_returns_stored_token_without_refresh(self, db_session, make_manager, auth_client):
        await _store(db_session, 1, "stored-access", "stored-refresh", NOW_MS + 30 * MINUTE_MS)

        token = await make_manager().get_valid_token()

        assert token == "stored-access"
        auth_client.exchange_refresh_token.assert_not_awaited()

    @pytest.mark.unit
    async def test_only_unexpired_token_is_eligible_and_refreshed_once(
        self, db_session, make_manager, auth_client
    ):
        await _store(db_session, 1, "expired-access", "expired-refresh", NOW_MS - MINUTE_MS)
        await _store(db_session, 2, "soon-access", "soon-refresh", NOW_MS + 3 * MINUTE_MS)

        token = await make_manager().get_valid_token()

        assert token == "new-access"
        auth_client.exchange_refresh_token.assert_awaited_once_with("soon-refresh")
        assert await _count_tokens(db_session) == 1

    @pytest.mark.unit
    async def test_refresh_persists_absolute_expiry(self, db_session, make_manager):
        await make_manager(bootstrap_refresh_token="bootstrap").get_valid_token()

        stored = await TokenStore(db_session).get_latest()
        assert stored.expires_at == NOW_MS + 3600 * 1000
        assert stored.updated_at == NOW_MS
        assert stored.refresh_token == "new-refresh"

    @pytest.mark.unit
    async def test_expired_record_refresh_token_is_used_before_bootstrap(
        self, db_session, make_manager, auth_client
    ):
        await _store(db_session, 1, "expired-access", "stored-refresh", NOW_MS - MINUTE_MS)

        await make_manager(bootstrap_refresh_token="bootstrap").get_valid_token()

        auth_client.exchange_refresh_token.assert_awaited_once_with("stored-refresh")

    @pytest.mark.unit
    async def test_bootstrap_token_used_when_store_is_empty(self, make_manager, auth_client):
        token = await make_manager(bootstrap_refresh_token="bootstrap").get_valid_token()

        assert token == "new-access"
        auth_client.exchange_refresh_token.assert_awaited_once_with("bootstrap")

    @pytest.mark.unit
    async def test_no_refresh_token_anywhere_raises_auth_error(self, make_manager, auth_client):
        with pytest.raises(AuthError) as exc_info:
            await make_manager().get_valid_token()

        assert exc_info.value.error_code == ErrorCode.AUTH_NO_REFRESH_TOKEN
        auth_client.exchange_refresh_token.assert_not_awaited()

    @pytest.mark.unit
    async def test_exchange_failure_becomes_auth_error(self, db_session, make_manager, auth_client):
        auth_client.exchange_refresh_token.side_effect = UpstreamFetchError("auth", "status 400")

        with pytest.raises(AuthError) as exc_info:
            await make_manager(bootstrap_refresh_token="bootstrap").get_valid_token()

        assert exc_info.value.error_code == ErrorCode.AUTH_REFRESH_FAILED
        assert await _count_tokens(db_session) == 0
