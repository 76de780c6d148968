"""
Core interfaces for the Chat Auth Client.

This module defines the abstract interfaces that components must implement
to ensure consistent behavior across the client.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any

from .models import AuthResponse, APIResponse, UserInfo


ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"


class ICredentialStore(ABC):
    """
    Key-value storage for credentials.

    Keys used by the client are ``access_token`` and ``refresh_token``; both
    absent means logged out.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Get a stored value, or None if absent."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a value if present."""
        pass

    def update(self, values: Dict[str, str]) -> None:
        """Store several values; stores that can should write them in one step."""
        for key, value in values.items():
            self.set(key, value)

    def clear(self) -> None:
        """Remove both stored tokens."""
        self.delete(ACCESS_TOKEN_KEY)
        self.delete(REFRESH_TOKEN_KEY)


class IAuthClient(ABC):
    """Interface for the authenticated request client."""

    @abstractmethod
    async def login(self, email: str, password: str) -> AuthResponse:
        """Authenticate with email and password."""
        pass

    @abstractmethod
    async def signup(self, name: str, email: str, password: str) -> AuthResponse:
        """Create an account and authenticate."""
        pass

    @abstractmethod
    async def refresh(self) -> AuthResponse:
        """Exchange the stored refresh token for a new credential pair."""
        pass

    @abstractmethod
    async def logout(self) -> bool:
        """Notify the backend and clear local credentials."""
        pass

    @abstractmethod
    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> APIResponse:
        """Send an authenticated request."""
        pass

    @abstractmethod
    async def get_me(self) -> UserInfo:
        """Get the currently authenticated user."""
        pass


class IConfigurationManager(ABC):
    """Interface for configuration management."""

    @abstractmethod
    def get_config(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        pass

    @abstractmethod
    def set_config(self, key: str, value: Any) -> None:
        """Set a configuration value."""
        pass

    @abstractmethod
    def get_server_url(self) -> str:
        """Get the backend base URL."""
        pass
