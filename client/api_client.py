"""
HTTP API Client for the Chat Auth Client.

This module provides the authenticated request client used to talk to the
chat backend. Every request runs through a small pipeline: request
middlewares attach the stored access token, an expired token is refreshed
once and the original request replayed, then response middlewares see the
final outcome.
"""

import asyncio
import json
import logging
from typing import Optional, Dict, Any, List, Callable, Awaitable, Tuple, Union

import aiohttp
from aiohttp import ClientSession, ClientTimeout, ClientError

from client.auth.token_manager import TokenManager
from client.config import ClientConfiguration, DEFAULT_PATHS, create_credential_store
from client.notifications import Notifier, NotificationType
from shared.exceptions import (
    ChatClientError, AuthFailure, NoRefreshToken, RefreshFailure,
    HTTPStatusFailure, TransportFailure, LogoutTransportFailure, handle_exception
)
from shared.interfaces import IAuthClient, ICredentialStore
from shared.logging_config import AuditLogger, AuditEventType, log_structured_error
from shared.models import (
    AuthResponse, LoginRequest, SignupRequest, PendingRequest,
    RequestContext, APIResponse, UserInfo
)

logger = logging.getLogger(__name__)

Outcome = Union[APIResponse, ChatClientError]
RequestMiddleware = Callable[[RequestContext], RequestContext]
ResponseMiddleware = Callable[[RequestContext, Outcome], Awaitable[Outcome]]

DEFAULT_TIMEOUT = 10.0


class ChatAPIClient(IAuthClient):
    """
    Authenticated HTTP client for the chat backend.

    Credentials live only in the injected store. A 401 on an authenticated
    request triggers at most one refresh-and-retry per logical request; if
    the refresh fails the store is cleared and the refresh error propagates.
    """

    def __init__(
        self,
        server_url: str,
        store: ICredentialStore,
        timeout: float = DEFAULT_TIMEOUT,
        paths: Optional[Dict[str, str]] = None,
        notifier: Optional[Notifier] = None,
        verify_ssl: bool = True
    ):
        self.server_url = server_url.rstrip('/')
        self.timeout = ClientTimeout(total=timeout)
        self.verify_ssl = verify_ssl
        self.paths = dict(DEFAULT_PATHS)
        self.paths.update(paths or {})

        self.tokens = TokenManager(store)
        self.notifier = notifier or Notifier()
        self._audit = AuditLogger()

        self._session: Optional[ClientSession] = None

        self._request_middlewares: List[RequestMiddleware] = [self._attach_access_token]
        self._response_middlewares: List[ResponseMiddleware] = []

        logger.info(f"API client initialized for server: {self.server_url}")

    @classmethod
    def from_config(
        cls,
        config: ClientConfiguration,
        store: Optional[ICredentialStore] = None,
        notifier: Optional[Notifier] = None
    ) -> 'ChatAPIClient':
        return cls(
            server_url=config.get_server_url(),
            store=store or create_credential_store(config),
            timeout=config.get_server_timeout(),
            paths=config.get_paths(),
            notifier=notifier,
            verify_ssl=config.get_verify_ssl()
        )

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self) -> None:
        """Ensure HTTP session is available."""
        if self._session is None or self._session.closed:
            connector_kwargs: Dict[str, Any] = {'limit': 10, 'limit_per_host': 5, 'keepalive_timeout': 30}
            if not self.verify_ssl:
                connector_kwargs['ssl'] = False

            self._session = ClientSession(
                connector=aiohttp.TCPConnector(**connector_kwargs),
                timeout=self.timeout,
                cookie_jar=aiohttp.CookieJar(unsafe=True),
                headers={
                    'Content-Type': 'application/json',
                    'Accept': 'application/json'
                }
            )

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def add_request_middleware(self, middleware: RequestMiddleware) -> None:
        """Append a request middleware; it runs after token attachment on every attempt."""
        self._request_middlewares.append(middleware)

    def add_response_middleware(self, middleware: ResponseMiddleware) -> None:
        """
        Append a response middleware.

        It runs once per logical request on the final outcome, after any
        refresh-and-retry. Auth endpoint calls do not pass through it.
        """
        self._response_middlewares.append(middleware)

    # Pipeline

    def _build_url(self, path: str) -> str:
        if path.startswith(('http://', 'https://')):
            return path
        return f"{self.server_url}/{path.lstrip('/')}"

    async def _send(self, ctx: RequestContext) -> APIResponse:
        """Send one HTTP attempt. Transport problems raise TransportFailure."""
        await self._ensure_session()

        request = ctx.request
        url = self._build_url(request.path)
        logger.debug(f"Making {request.method} request to {url} (retried: {ctx.retried})")

        try:
            async with self._session.request(
                method=request.method,
                url=url,
                json=request.json,
                params=request.params,
                headers=request.headers
            ) as response:
                text = await response.text()
                return APIResponse(
                    status=response.status,
                    data=self._decode_body(text, response.content_type, response.status),
                    headers=dict(response.headers)
                )
        except (ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
            failure = handle_exception(e, context={'method': request.method, 'path': request.path})
            logger.warning(f"{request.method} {request.path} failed: {failure.message}")
            raise failure from e

    @staticmethod
    def _decode_body(text: str, content_type: str, status: int) -> Any:
        """
        Decode a response body.

        A 2xx JSON body that does not parse raises ValueError. Other bodies
        that are not JSON are kept as text, error pages included.
        """
        if not text:
            return None
        is_json = content_type == 'application/json' or content_type.endswith('+json')
        try:
            return json.loads(text)
        except ValueError:
            if is_json and 200 <= status < 300:
                raise
            return text

    async def _attempt(self, ctx: RequestContext) -> Tuple[RequestContext, Outcome]:
        """Run the request middlewares and send. Returns the context as sent."""
        for middleware in self._request_middlewares:
            ctx = middleware(ctx)

        try:
            return ctx, await self._send(ctx)
        except ChatClientError as e:
            return ctx, e

    async def _run_pipeline(self, ctx: RequestContext) -> Outcome:
        """
        Run one logical request.

        Request middlewares run on every HTTP attempt. Response middlewares
        run once, on the final outcome, with the final context.
        """
        sent_ctx, outcome = await self._attempt(ctx)
        sent_ctx, outcome = await self._refresh_on_unauthorized(ctx, sent_ctx, outcome)

        for middleware in self._response_middlewares:
            outcome = await middleware(sent_ctx, outcome)

        return outcome

    async def _execute(self, ctx: RequestContext) -> APIResponse:
        """Run the pipeline and raise an error outcome."""
        outcome = await self._run_pipeline(ctx)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def _send_auth_call(self, ctx: RequestContext) -> APIResponse:
        """Send an auth endpoint call. Caller middlewares and the refresh path are skipped."""
        return await self._send(self._attach_access_token(ctx))

    def _attach_access_token(self, ctx: RequestContext) -> RequestContext:
        """Attach the stored access token as a bearer credential."""
        if not ctx.authenticated:
            return ctx

        token = self.tokens.get_access_token()
        if token:
            return ctx.with_request(ctx.request.with_header('Authorization', f'Bearer {token}'))
        return ctx.with_request(ctx.request.without_header('Authorization'))

    async def _refresh_on_unauthorized(
        self,
        ctx: RequestContext,
        sent_ctx: RequestContext,
        outcome: Outcome
    ) -> Tuple[RequestContext, Outcome]:
        """Refresh and replay ``ctx`` once when an authenticated request gets a 401."""
        if not isinstance(outcome, APIResponse) or outcome.status != 401 or ctx.retried:
            return sent_ctx, outcome

        logger.info(f"{ctx.request.method} {ctx.request.path} unauthorized, refreshing token")
        retry_ctx = ctx.mark_retried()

        try:
            await self.tokens.refresh_once(self._refresh_session)
        except (NoRefreshToken, RefreshFailure) as e:
            return retry_ctx, e

        return await self._attempt(retry_ctx)

    async def _refresh_session(self) -> AuthResponse:
        """Refresh for a failed request; an irrecoverable failure ends the session."""
        try:
            return await self.refresh()
        except (NoRefreshToken, RefreshFailure) as e:
            self.tokens.invalidate_session(e)
            self._audit.log_session_invalidated(e.message)
            raise

    # Authentication operations

    async def _authenticate(
        self,
        event_type: AuditEventType,
        path: str,
        payload: Dict[str, Any],
        email: str,
        default_message: str
    ) -> AuthResponse:
        ctx = RequestContext(
            request=PendingRequest(method='POST', path=path, json=payload),
            retried=True,
            authenticated=False
        )

        try:
            response = await self._send_auth_call(ctx)
        except TransportFailure as e:
            self._audit.log_authentication(event_type, email, success=False, failure_reason=e.message)
            raise

        if not response.ok:
            message = response.error_message(default_message)
            self._audit.log_authentication(event_type, email, success=False, failure_reason=message)
            raise AuthFailure(message, status=response.status)

        try:
            auth_response = AuthResponse.from_dict(response.data)
        except ValueError as e:
            self._audit.log_authentication(event_type, email, success=False, failure_reason=str(e))
            raise AuthFailure(f"{default_message}: {e}", status=response.status, cause=e)

        self.tokens.store_auth_response(auth_response)
        self._audit.log_authentication(event_type, email, success=True)
        return auth_response

    async def login(self, email: str, password: str) -> AuthResponse:
        """
        Log in with email and password.

        Args:
            email: Account email
            password: Account password

        Returns:
            The backend's auth response

        Raises:
            AuthFailure: The backend rejected the credentials
            TransportFailure: The backend could not be reached
        """
        auth_response = await self._authenticate(
            AuditEventType.LOGIN,
            self.paths['login'],
            LoginRequest(email=email, password=password).to_dict(),
            email,
            "Login failed"
        )
        self.notifier.notify(auth_response.message or "Logged in successfully", NotificationType.SUCCESS)
        return auth_response

    async def signup(self, name: str, email: str, password: str) -> AuthResponse:
        """
        Create an account; same contract as login.

        Raises:
            AuthFailure: The backend rejected the signup
            TransportFailure: The backend could not be reached
        """
        auth_response = await self._authenticate(
            AuditEventType.SIGNUP,
            self.paths['signup'],
            SignupRequest(name=name, email=email, password=password).to_dict(),
            email,
            "Signup failed"
        )
        self.notifier.notify(auth_response.message or "Account created successfully", NotificationType.SUCCESS)
        return auth_response

    async def refresh(self) -> AuthResponse:
        """
        Exchange the stored refresh token for a new credential pair.

        Writes nothing to the store on failure.

        Raises:
            NoRefreshToken: No refresh token is stored; no request is made
            RefreshFailure: The refresh was rejected, unreachable or malformed
        """
        refresh_token = self.tokens.get_refresh_token()
        if not refresh_token:
            logger.info("Token refresh skipped: no refresh token stored")
            raise NoRefreshToken()

        ctx = RequestContext(
            request=PendingRequest(
                method='POST',
                path=self.paths['refresh'],
                headers={'Authorization': f'Bearer refresh {refresh_token}'},
                json={}
            ),
            retried=True,
            authenticated=False
        )

        try:
            response = await self._send_auth_call(ctx)
            if not response.ok:
                raise RefreshFailure(
                    response.error_message("Token refresh failed"),
                    status=response.status
                )
            try:
                auth_response = AuthResponse.from_dict(response.data)
            except ValueError as e:
                raise RefreshFailure(f"Token refresh failed: {e}", status=response.status, cause=e)
        except TransportFailure as e:
            failure = RefreshFailure(f"Token refresh failed: {e.message}", cause=e)
            self._audit.log_authentication(AuditEventType.TOKEN_REFRESH, success=False, failure_reason=failure.message)
            raise failure from e
        except RefreshFailure as e:
            self._audit.log_authentication(AuditEventType.TOKEN_REFRESH, success=False, failure_reason=e.message)
            raise

        self.tokens.store_auth_response(auth_response)
        self._audit.log_authentication(AuditEventType.TOKEN_REFRESH, success=True)
        logger.info("Token refresh successful")
        return auth_response

    async def logout(self) -> bool:
        """
        Notify the backend of the logout and clear local credentials.

        Local credentials are cleared whatever happens on the network. A
        failed backend call is reported as an error notification, not raised.

        Returns:
            True if the backend acknowledged the logout
        """
        ctx = RequestContext(
            request=PendingRequest(method='POST', path=self.paths['logout']),
            retried=True
        )
        backend_notified = False

        try:
            response = await self._send_auth_call(ctx)
            if response.ok:
                backend_notified = True
            else:
                self._report_logout_failure(LogoutTransportFailure(
                    f"Logout rejected ({response.status}): {response.error_message()}",
                    context={'status': response.status}
                ))
        except TransportFailure as e:
            self._report_logout_failure(LogoutTransportFailure(e.message, cause=e))
        finally:
            self.tokens.clear()
            self._audit.log_logout(backend_notified)

        return backend_notified

    def _report_logout_failure(self, failure: LogoutTransportFailure) -> None:
        log_structured_error(logger, failure, level=logging.WARNING)
        self._audit.log_error(failure)
        self.notifier.notify(f"Error occurred while logging out: {failure.message}", NotificationType.ERROR)

    # Authenticated requests

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> APIResponse:
        """
        Send an authenticated request.

        Returns:
            The 2xx response

        Raises:
            HTTPStatusFailure: The final response was not 2xx
            NoRefreshToken, RefreshFailure: A 401 could not be recovered
            TransportFailure: Timeout, connection error
        """
        ctx = RequestContext(
            request=PendingRequest(
                method=method.upper(),
                path=path,
                headers=dict(headers or {}),
                json=json,
                params=params
            )
        )

        response = await self._execute(ctx)
        if not response.ok:
            raise HTTPStatusFailure(
                f"{ctx.request.method} {path} failed ({response.status}): {response.error_message()}",
                status=response.status,
                body=response.data
            )
        return response

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> APIResponse:
        return await self.request('GET', path, params=params)

    async def post(self, path: str, json: Any = None) -> APIResponse:
        return await self.request('POST', path, json=json)

    async def put(self, path: str, json: Any = None) -> APIResponse:
        return await self.request('PUT', path, json=json)

    async def delete(self, path: str) -> APIResponse:
        return await self.request('DELETE', path)

    async def get_me(self) -> UserInfo:
        """Get the currently authenticated user."""
        response = await self.get(self.paths['me'])
        data = response.data if isinstance(response.data, dict) else {}
        try:
            return UserInfo.from_dict(data.get('user'))
        except ValueError as e:
            raise handle_exception(e, context={'path': self.paths['me']})

    async def validate_token(self) -> bool:
        """Ask the backend whether the stored access token is valid."""
        response = await self.get(self.paths['validate'])
        return isinstance(response.data, dict) and bool(response.data.get('valid'))

    async def change_password(self, current_password: str, new_password: str) -> str:
        """Change the account password and return the backend's message."""
        response = await self.post(
            self.paths['change_password'],
            json={'current_password': current_password, 'new_password': new_password}
        )
        if isinstance(response.data, dict) and response.data.get('message'):
            return str(response.data['message'])
        return "Password changed successfully"

    async def check_email(self, email: str) -> bool:
        """Check whether an account exists for ``email``. Unauthenticated."""
        ctx = RequestContext(
            request=PendingRequest(method='POST', path=self.paths['check_email'], json={'email': email}),
            retried=True,
            authenticated=False
        )
        response = await self._execute(ctx)
        if not response.ok:
            raise HTTPStatusFailure(
                f"Email check failed ({response.status}): {response.error_message()}",
                status=response.status,
                body=response.data
            )
        return isinstance(response.data, dict) and bool(response.data.get('exists'))
