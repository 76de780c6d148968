"""
Structured exception hierarchy for the Chat Auth Client.

This module defines the typed failures raised by the authenticated request
client, each carrying an error code, context information and recovery
suggestions so callers can react consistently.
"""

import asyncio
from datetime import datetime
from typing import Optional, Dict, Any, List
from enum import Enum

import aiohttp


class ErrorCode(Enum):
    """Standardized error codes for the Chat Auth Client."""

    # Authentication Errors (1000-1099)
    AUTH_REJECTED = "AUTH_1001"
    AUTH_NO_REFRESH_TOKEN = "AUTH_1002"
    AUTH_REFRESH_FAILED = "AUTH_1003"

    # Network and Communication Errors (2000-2099)
    NETWORK_CONNECTION_FAILED = "NETWORK_2001"
    NETWORK_TIMEOUT = "NETWORK_2002"
    NETWORK_MALFORMED_RESPONSE = "NETWORK_2003"
    NETWORK_LOGOUT_FAILED = "NETWORK_2004"

    # HTTP Errors (2100-2199)
    HTTP_ERROR_STATUS = "HTTP_2101"

    # Credential Storage Errors (3000-3099)
    STORAGE_WRITE_FAILED = "STORAGE_3001"
    STORAGE_READ_FAILED = "STORAGE_3002"

    # Configuration Errors (8000-8099)
    CONFIG_INVALID_VALUE = "CONFIG_8001"
    CONFIG_INVALID_FORMAT = "CONFIG_8002"

    # Internal Errors (9000-9099)
    INTERNAL_UNEXPECTED_ERROR = "INTERNAL_9001"


class ErrorSeverity(Enum):
    """Error severity levels for logging and handling."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecoveryAction(Enum):
    """Suggested recovery actions for errors."""
    RETRY = "retry"
    REFRESH_TOKEN = "refresh_token"
    REAUTHENTICATE = "reauthenticate"
    USER_INTERVENTION = "user_intervention"
    CHECK_CONNECTION = "check_connection"
    IGNORE = "ignore"


class ChatClientError(Exception):
    """
    Base exception class for all Chat Auth Client errors.

    Provides structured error information including error codes, context,
    and recovery suggestions for consistent error handling.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
        recovery_actions: Optional[List[RecoveryAction]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)

        self.message = message
        self.error_code = error_code
        self.severity = severity
        self.context = context or {}
        self.recovery_actions = recovery_actions or []
        self.cause = cause
        self.user_message = user_message or message
        self.timestamp = datetime.now()

        # Add cause information to context if available
        if cause:
            self.context['cause_type'] = type(cause).__name__
            self.context['cause_message'] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format for serialization."""
        return {
            'error': {
                'code': self.error_code.value,
                'message': self.message,
                'user_message': self.user_message,
                'severity': self.severity.value,
                'timestamp': self.timestamp.isoformat(),
                'context': self.context,
                'recovery_actions': [action.value for action in self.recovery_actions],
                'cause': {
                    'type': self.context.get('cause_type'),
                    'message': self.context.get('cause_message')
                } if self.cause else None
            }
        }


class AuthFailure(ChatClientError):
    """The backend rejected login or signup credentials."""

    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        context = kwargs.pop('context', {})
        if status is not None:
            context['status'] = status

        super().__init__(
            message=message,
            error_code=kwargs.pop('error_code', ErrorCode.AUTH_REJECTED),
            severity=ErrorSeverity.LOW,
            recovery_actions=[RecoveryAction.USER_INTERVENTION],
            context=context,
            **kwargs
        )
        self.status = status


class NoRefreshToken(ChatClientError):
    """A refresh was attempted but no refresh token is stored."""

    def __init__(self, message: str = "No refresh token available", **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.AUTH_NO_REFRESH_TOKEN,
            severity=ErrorSeverity.MEDIUM,
            recovery_actions=[RecoveryAction.REAUTHENTICATE],
            user_message="Your session has ended. Please log in again.",
            **kwargs
        )


class RefreshFailure(ChatClientError):
    """The refresh endpoint rejected the refresh token or was unreachable."""

    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        context = kwargs.pop('context', {})
        if status is not None:
            context['status'] = status

        super().__init__(
            message=message,
            error_code=ErrorCode.AUTH_REFRESH_FAILED,
            severity=ErrorSeverity.HIGH,
            recovery_actions=[RecoveryAction.REAUTHENTICATE],
            context=context,
            user_message="Your session has expired. Please log in again.",
            **kwargs
        )
        self.status = status


class HTTPStatusFailure(ChatClientError):
    """A request finished with a non-2xx status after all interception."""

    def __init__(self, message: str, status: int, body: Any = None, **kwargs):
        context = kwargs.pop('context', {})
        context['status'] = status

        super().__init__(
            message=message,
            error_code=ErrorCode.HTTP_ERROR_STATUS,
            severity=ErrorSeverity.MEDIUM,
            recovery_actions=[RecoveryAction.USER_INTERVENTION],
            context=context,
            **kwargs
        )
        self.status = status
        self.body = body


class TransportFailure(ChatClientError):
    """Timeout, unreachable network or malformed response."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.NETWORK_CONNECTION_FAILED, **kwargs):
        super().__init__(
            message=message,
            error_code=error_code,
            severity=ErrorSeverity.MEDIUM,
            recovery_actions=[RecoveryAction.CHECK_CONNECTION, RecoveryAction.RETRY],
            **kwargs
        )


class LogoutTransportFailure(TransportFailure):
    """The backend could not be notified of a logout. Never fatal."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message=message, error_code=ErrorCode.NETWORK_LOGOUT_FAILED, **kwargs)
        self.severity = ErrorSeverity.LOW
        self.recovery_actions = [RecoveryAction.IGNORE]


class TokenStorageError(ChatClientError):
    """The credential store could not be read or written."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.STORAGE_WRITE_FAILED, **kwargs):
        super().__init__(
            message=message,
            error_code=error_code,
            severity=ErrorSeverity.HIGH,
            recovery_actions=[RecoveryAction.USER_INTERVENTION],
            **kwargs
        )


class ConfigurationError(ChatClientError):
    """Configuration related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', {})
        if config_key:
            context['config_key'] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.pop('error_code', ErrorCode.CONFIG_INVALID_VALUE),
            severity=ErrorSeverity.HIGH,
            recovery_actions=[RecoveryAction.USER_INTERVENTION],
            context=context,
            **kwargs
        )


def handle_exception(
    exception: Exception,
    context: Optional[Dict[str, Any]] = None,
    default_error_code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED_ERROR
) -> ChatClientError:
    """
    Convert a generic exception to a structured ChatClientError.

    Args:
        exception: The original exception
        context: Additional context information
        default_error_code: Default error code if specific mapping not found

    Returns:
        Structured ChatClientError
    """
    if isinstance(exception, ChatClientError):
        return exception

    if isinstance(exception, (asyncio.TimeoutError, TimeoutError)):
        return TransportFailure(
            message=f"Request timed out: {exception}" if str(exception) else "Request timed out",
            error_code=ErrorCode.NETWORK_TIMEOUT,
            context=context,
            cause=exception
        )

    if isinstance(exception, (aiohttp.ContentTypeError, ValueError)):
        return TransportFailure(
            message=f"Malformed response: {exception}",
            error_code=ErrorCode.NETWORK_MALFORMED_RESPONSE,
            context=context,
            cause=exception
        )

    if isinstance(exception, (aiohttp.ClientError, ConnectionError, OSError)):
        return TransportFailure(
            message=f"Connection failed: {exception}",
            error_code=ErrorCode.NETWORK_CONNECTION_FAILED,
            context=context,
            cause=exception
        )

    return ChatClientError(
        message=str(exception),
        error_code=default_error_code,
        context=context,
        cause=exception
    )
