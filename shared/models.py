"""
Core data models for the Chat Auth Client.

This module defines the data structures exchanged between the authenticated
request client, the credential store and the backend auth service.
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Dict, Any


@dataclass
class CredentialPair:
    """An access token plus the optional refresh token issued alongside it."""
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int = 0

    def __post_init__(self):
        if not self.access_token:
            raise ValueError("Access token cannot be empty")


@dataclass
class UserInfo:
    """User block returned by the backend."""
    id: Optional[int]
    name: str = ""
    email: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UserInfo':
        if not isinstance(data, dict):
            raise ValueError("User payload must be an object")
        return cls(
            id=data.get('id'),
            name=data.get('name', ''),
            email=data.get('email', '')
        )


@dataclass
class AuthResponse:
    """Successful response of the login, signup and refresh endpoints."""
    access_token: str
    message: str = ""
    status: str = ""
    refresh_token: Optional[str] = None
    expires_in: int = 0
    user: Optional[UserInfo] = None

    @classmethod
    def from_dict(cls, data: Any) -> 'AuthResponse':
        """
        Parse a backend payload.

        Raises:
            ValueError: If the payload is not an object or has no access token
        """
        if not isinstance(data, dict):
            raise ValueError("Auth response must be a JSON object")

        access_token = data.get('access_token')
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("Auth response has no access_token")

        refresh_token = data.get('refresh_token')
        if refresh_token is not None and not isinstance(refresh_token, str):
            raise ValueError("Auth response refresh_token must be a string")

        try:
            expires_in = int(data.get('expires_in') or 0)
        except (TypeError, ValueError):
            raise ValueError("Auth response expires_in must be a number")

        user = data.get('user')

        return cls(
            access_token=access_token,
            message=data.get('message', ''),
            status=data.get('status', ''),
            refresh_token=refresh_token or None,
            expires_in=expires_in,
            user=UserInfo.from_dict(user) if user else None
        )

    def credentials(self) -> CredentialPair:
        """Return the credential pair carried by this response."""
        return CredentialPair(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_in=self.expires_in
        )


@dataclass
class LoginRequest:
    email: str
    password: str

    def to_dict(self) -> Dict[str, str]:
        return {'email': self.email, 'password': self.password}


@dataclass
class SignupRequest:
    name: str
    email: str
    password: str

    def to_dict(self) -> Dict[str, str]:
        return {'name': self.name, 'email': self.email, 'password': self.password}


@dataclass(frozen=True)
class PendingRequest:
    """
    Description of an outbound request.

    Captured before sending so it can be replayed unchanged except for its
    Authorization header.
    """
    method: str
    path: str
    headers: Dict[str, str] = field(default_factory=dict)
    json: Any = None
    params: Optional[Dict[str, Any]] = None

    def with_header(self, name: str, value: str) -> 'PendingRequest':
        headers = {k: v for k, v in self.headers.items() if k.lower() != name.lower()}
        headers[name] = value
        return replace(self, headers=headers)

    def without_header(self, name: str) -> 'PendingRequest':
        headers = {k: v for k, v in self.headers.items() if k.lower() != name.lower()}
        return replace(self, headers=headers)


@dataclass(frozen=True)
class RequestContext:
    """
    Per-logical-request state threaded through the middleware pipeline.

    ``retried`` is set once a refresh-and-retry has been attempted for this
    logical request; it is never reset by a replay.
    """
    request: PendingRequest
    retried: bool = False
    authenticated: bool = True

    def with_request(self, request: PendingRequest) -> 'RequestContext':
        return replace(self, request=request)

    def mark_retried(self) -> 'RequestContext':
        return replace(self, retried=True)


@dataclass
class APIResponse:
    """Decoded HTTP response."""
    status: int
    data: Any = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def error_message(self, default: str = "Request failed") -> str:
        """Best-effort human readable error message from the body."""
        if isinstance(self.data, dict):
            for key in ('message', 'error', 'detail'):
                value = self.data.get(key)
                if value:
                    return str(value)
        elif isinstance(self.data, str) and self.data.strip():
            return self.data.strip()
        return default
