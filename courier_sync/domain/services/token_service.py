"""
Token Service - OAuth2 token lifecycle for the fleet API.

Exactly one logical token record exists. It is read before every
authenticated call and replaced on every refresh. Two overlapping
refreshes are harmless: the last replace wins.
"""
from typing import Callable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from courier_sync.core.config import settings
from courier_sync.core.exceptions import AuthError, ErrorCode, ExternalServiceException
from courier_sync.core.logging import get_logger
from courier_sync.db.database import SessionFactory
from courier_sync.db.models.auth_token import AuthToken
from courier_sync.domain.services.external.auth_api import AuthApiClient
from courier_sync.domain.services.time_window import Clock, to_epoch_ms, utc_now

logger = get_logger(__name__)

SINGLETON_TOKEN_ID = 1

# Tokens expiring sooner than this are refreshed before being handed out
REFRESH_MARGIN_MS = 5 * 60 * 1000


class TokenStore:
    """Singleton-record access to the auth_tokens table"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_valid(self, now_ms: int) -> AuthToken | None:
        """Token with the latest expiry that is still strictly in the future"""
        result = await self.db.execute(
            select(AuthToken)
            .where(AuthToken.expires_at > now_ms)
            .order_by(AuthToken.expires_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_latest(self) -> AuthToken | None:
        """Most recently written record, expired or not"""
        result = await self.db.execute(
            select(AuthToken).order_by(AuthToken.updated_at.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    async def replace(
        self,
        access_token: str,
        refresh_token: str,
        expires_at: int,
        now_ms: int,
    ) -> AuthToken:
        """Overwrite the singleton record (insert on first use), drop anything else"""
        token = await self.db.get(AuthToken, SINGLETON_TOKEN_ID)
        if token is None:
            token = AuthToken(id=SINGLETON_TOKEN_ID)
            self.db.add(token)

        token.access_token = access_token
        token.refresh_token = refresh_token
        token.expires_at = expires_at
        token.updated_at = now_ms

        await self.db.execute(delete(AuthToken).where(AuthToken.id != SINGLETON_TOKEN_ID))
        await self.db.commit()
        return token


class TokenManager:
    """Hands out a valid access token, refreshing it when needed"""

    def __init__(
        self,
        session_factory: SessionFactory,
        auth_client: AuthApiClient,
        bootstrap_refresh_token: str | None = None,
        clock: Clock = utc_now,
    ):
        self._session_factory = session_factory
        self._auth_client = auth_client
        self._bootstrap_refresh_token = (
            bootstrap_refresh_token
            if bootstrap_refresh_token is not None
            else settings.FLEET_REFRESH_TOKEN
        )
        self._now_ms: Callable[[], int] = lambda: to_epoch_ms(clock())

    async def get_valid_token(self) -> str:
        """
        Return an access token that is valid for at least the refresh margin.

        Raises:
            AuthError: no refresh token is available, or the exchange failed
        """
        now_ms = self._now_ms()
        async with self._session_factory() as db:
            store = TokenStore(db)

            token = await store.get_valid(now_ms)
            if token is not None:
                if token.expires_at - now_ms < REFRESH_MARGIN_MS:
                    logger.info(
                        "Access token expires soon, refreshing",
                        extra_data={"expires_in_ms": token.expires_at - now_ms},
                    )
                    return await self._refresh(store, token.refresh_token)
                return token.access_token

            stored = await store.get_latest()
            refresh_token = stored.refresh_token if stored is not None else None
            if not refresh_token:
                refresh_token = self._bootstrap_refresh_token
            if not refresh_token:
                raise AuthError(
                    "No valid tokens found and FLEET_REFRESH_TOKEN not set",
                    error_code=ErrorCode.AUTH_NO_REFRESH_TOKEN,
                )

            return await self._refresh(store, refresh_token)

    async def _refresh(self, store: TokenStore, refresh_token: str) -> str:
        logger.info("Refreshing auth tokens")
        try:
            grant = await self._auth_client.exchange_refresh_token(refresh_token)
        except ExternalServiceException as exc:
            raise AuthError(
                f"Token refresh failed: {exc.message}",
                details=dict(exc.details),
            ) from exc

        now_ms = self._now_ms()
        await store.replace(
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            expires_at=now_ms + grant.expires_in * 1000,
            now_ms=now_ms,
        )
        logger.info(
            "Tokens updated successfully",
            extra_data={"expires_in_seconds": grant.expires_in},
        )
        return grant.access_token
