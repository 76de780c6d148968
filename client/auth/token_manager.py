"""
Token Manager for the Chat Auth Client.

This module owns every read and write of the credential store made by the
client: write-through persistence of credential pairs, session state
callbacks, the shared in-flight refresh guard, and offline inspection of the
stored access token's claims.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Callable, Awaitable, List

from jose import jwt, JWTError

from shared.interfaces import ICredentialStore, ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY
from shared.models import AuthResponse

logger = logging.getLogger(__name__)


class TokenManager:
    """
    Manages stored credentials on behalf of the API client.

    The store is the single owner of credentials; this class never caches a
    token between calls.
    """

    def __init__(self, store: ICredentialStore):
        self.store = store

        # Callbacks for session events
        self._auth_callbacks: List[Callable[[bool], None]] = []
        self._session_invalidated_callbacks: List[Callable[[Exception], None]] = []

        self._refresh_task: Optional[asyncio.Task] = None

    def add_auth_callback(self, callback: Callable[[bool], None]) -> None:
        """
        Add callback for authentication state changes.

        Args:
            callback: Function called with authentication status (bool)
        """
        self._auth_callbacks.append(callback)

    def add_session_invalidated_callback(self, callback: Callable[[Exception], None]) -> None:
        """
        Add callback fired after an irrecoverable refresh failure.

        The store is already empty when the callback runs.

        Args:
            callback: Function called with the refresh error
        """
        self._session_invalidated_callbacks.append(callback)

    def _notify_auth_change(self, is_authenticated: bool) -> None:
        for callback in self._auth_callbacks:
            try:
                callback(is_authenticated)
            except Exception as e:
                logger.error(f"Error in auth callback: {e}")

    def _notify_session_invalidated(self, error: Exception) -> None:
        for callback in self._session_invalidated_callbacks:
            try:
                callback(error)
            except Exception as e:
                logger.error(f"Error in session invalidated callback: {e}")

    def get_access_token(self) -> Optional[str]:
        return self.store.get(ACCESS_TOKEN_KEY)

    def get_refresh_token(self) -> Optional[str]:
        return self.store.get(REFRESH_TOKEN_KEY)

    def is_authenticated(self) -> bool:
        return self.get_access_token() is not None

    def store_auth_response(self, response: AuthResponse) -> None:
        """
        Persist the credentials carried by a successful auth response.

        The access token is always written; the refresh token only when the
        backend returned one, so a non-rotating refresh keeps the old one.
        """
        values = {ACCESS_TOKEN_KEY: response.access_token}
        if response.refresh_token:
            values[REFRESH_TOKEN_KEY] = response.refresh_token

        self.store.update(values)
        logger.debug(f"Stored credentials (refresh token rotated: {bool(response.refresh_token)})")
        self._notify_auth_change(True)

    def clear(self) -> None:
        """Remove both stored tokens."""
        self.store.clear()
        logger.info("Stored credentials cleared")
        self._notify_auth_change(False)

    def invalidate_session(self, error: Exception) -> None:
        """Clear the store, then tell listeners the session is gone."""
        self.clear()
        self._notify_session_invalidated(error)

    async def refresh_once(self, refresh: Callable[[], Awaitable[AuthResponse]]) -> AuthResponse:
        """
        Run ``refresh`` unless a refresh is already in flight, then await it.

        Concurrent callers share the same task and therefore the same result
        or exception. The task is dropped once it finishes.
        """
        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.ensure_future(refresh())
            self._refresh_task = task
            task.add_done_callback(self._clear_refresh_task)
        else:
            logger.debug("Joining in-flight token refresh")

        return await asyncio.shield(task)

    def _clear_refresh_task(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        # Mark the exception retrieved; awaiting callers still receive it.
        if not task.cancelled():
            task.exception()

    def get_access_claims(self) -> Dict[str, Any]:
        """
        Get the unverified claims of the stored access token.

        Returns:
            Claims dictionary, empty if no token is stored or it is not a JWT
        """
        token = self.get_access_token()
        if not token:
            return {}

        try:
            return jwt.get_unverified_claims(token)
        except JWTError as e:
            logger.debug(f"Stored access token is not a readable JWT: {e}")
            return {}

    def access_token_expires_at(self) -> Optional[datetime]:
        exp = self.get_access_claims().get('exp')
        if exp is None:
            return None
        try:
            return datetime.fromtimestamp(float(exp), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError):
            logger.warning("Invalid exp claim in access token")
            return None

    def needs_refresh(self, threshold: timedelta = timedelta(minutes=1)) -> bool:
        """
        Check if the stored access token expires within ``threshold``.

        Returns False when the expiry is unknown.
        """
        expires_at = self.access_token_expires_at()
        if expires_at is None:
            return False
        return expires_at - datetime.now(timezone.utc) <= threshold

    def get_session_info(self) -> Dict[str, Any]:
        """Summary of the stored session for status displays. Contains no tokens."""
        claims = self.get_access_claims()
        expires_at = self.access_token_expires_at()

        return {
            'authenticated': self.is_authenticated(),
            'has_refresh_token': self.get_refresh_token() is not None,
            'user_id': claims.get('user_id'),
            'email': claims.get('email'),
            'name': claims.get('name'),
            'expires_at': expires_at.isoformat() if expires_at else None,
            'needs_refresh': self.needs_refresh()
        }
