"""
Command-line entry point for the Chat Auth Client.

Provides login, signup, refresh, logout and session status commands plus a
generic authenticated request command for scripting against the backend.
"""

import sys
import json
import asyncio
import argparse
import getpass
import logging
from typing import Optional, List

from client.api_client import ChatAPIClient
from client.config import ClientConfiguration
from client.notifications import Notifier, NotificationType
from shared.exceptions import (
    ChatClientError, AuthFailure, NoRefreshToken, RefreshFailure, TransportFailure
)
from shared.logging_config import setup_logging, LogLevel, LogFormat

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILED = 1
EXIT_AUTH_FAILED = 2
EXIT_SESSION_EXPIRED = 3
EXIT_TRANSPORT = 4
EXIT_INTERRUPTED = 130


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="chat-auth",
        description="Chat Auth Client",
        epilog="""
Examples:
  %(prog)s login --email me@example.com       # Prompt for password and log in
  %(prog)s status --json                      # Show stored session as JSON
  %(prog)s request GET /api/friends           # Authenticated request
  %(prog)s logout                             # Clear local credentials
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    config_group = parser.add_argument_group('Configuration')
    config_group.add_argument("--config", type=str, metavar="FILE",
                              help="Path to configuration file")
    config_group.add_argument("--server-url", type=str, metavar="URL",
                              help="Override backend URL")
    config_group.add_argument("--timeout", type=float, metavar="SECONDS",
                              help="Override request timeout")
    config_group.add_argument("--storage", choices=['memory', 'keyring', 'file'],
                              help="Override credential storage backend")

    debug_group = parser.add_argument_group('Logging')
    debug_group.add_argument("--verbose", "-v", action="store_true",
                             help="Enable verbose output")
    debug_group.add_argument("--debug", action="store_true",
                             help="Enable debug logging")
    debug_group.add_argument("--log-file", type=str, metavar="FILE",
                             help="Write logs to file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    login_parser = subparsers.add_parser("login", help="Log in with email and password")
    login_parser.add_argument("--email", required=True)
    login_parser.add_argument("--password", help="Password (prompted if omitted)")

    signup_parser = subparsers.add_parser("signup", help="Create an account")
    signup_parser.add_argument("--name", required=True)
    signup_parser.add_argument("--email", required=True)
    signup_parser.add_argument("--password", help="Password (prompted if omitted)")

    subparsers.add_parser("refresh", help="Refresh the stored access token")
    subparsers.add_parser("logout", help="Log out and clear stored credentials")

    status_parser = subparsers.add_parser("status", help="Show the stored session")
    status_parser.add_argument("--json", action="store_true", help="Output JSON")

    me_parser = subparsers.add_parser("me", help="Show the authenticated user")
    me_parser.add_argument("--json", action="store_true", help="Output JSON")

    request_parser = subparsers.add_parser("request", help="Send an authenticated request")
    request_parser.add_argument("method", help="HTTP method")
    request_parser.add_argument("path", help="Path relative to the backend URL")
    request_parser.add_argument("--data", type=str, metavar="JSON", help="JSON request body")

    return parser.parse_args(argv)


def configure_logging(args, config: ClientConfiguration) -> None:
    """Configure logging from arguments and configuration."""
    if args.debug:
        level = LogLevel.DEBUG
    elif args.verbose:
        level = LogLevel.INFO
    else:
        level = LogLevel.WARNING

    try:
        log_format = LogFormat(config.get_log_format())
    except ValueError:
        log_format = LogFormat.STANDARD

    setup_logging(
        log_level=level,
        log_format=log_format,
        log_file=args.log_file or config.get_log_file()
    )


def load_configuration(args) -> ClientConfiguration:
    config = ClientConfiguration(args.config)

    if args.server_url:
        config.set_override('server.url', args.server_url)
    if args.timeout:
        config.set_override('server.timeout', args.timeout)
    if args.storage:
        config.set_override('storage.backend', args.storage)

    return config


def print_notification(message: str, type: NotificationType) -> None:
    stream = sys.stderr if type in (NotificationType.ERROR, NotificationType.WARN) else sys.stdout
    print(message, file=stream)


async def run_command(args, client: ChatAPIClient) -> int:
    """Run a single command against the client."""
    command = args.command

    if command == "login":
        password = args.password or getpass.getpass("Password: ")
        await client.login(args.email, password)
        return EXIT_SUCCESS

    if command == "signup":
        password = args.password or getpass.getpass("Password: ")
        await client.signup(args.name, args.email, password)
        return EXIT_SUCCESS

    if command == "refresh":
        response = await client.refresh()
        print(response.message or "Token refreshed")
        return EXIT_SUCCESS

    if command == "logout":
        if await client.logout():
            print("Logged out")
        else:
            print("Logged out locally")
        return EXIT_SUCCESS

    if command == "status":
        info = client.tokens.get_session_info()
        if args.json:
            print(json.dumps(info))
        elif info['authenticated']:
            who = info['email'] or info['user_id'] or "unknown user"
            print(f"Authenticated as {who}")
            if info['expires_at']:
                print(f"Access token expires at {info['expires_at']}")
        else:
            print("Not authenticated")
        return EXIT_SUCCESS if info['authenticated'] else EXIT_FAILED

    if command == "me":
        user = await client.get_me()
        if args.json:
            print(json.dumps({'id': user.id, 'name': user.name, 'email': user.email}))
        else:
            print(f"{user.name} <{user.email}> (id {user.id})")
        return EXIT_SUCCESS

    if command == "request":
        body = json.loads(args.data) if args.data else None
        response = await client.request(args.method, args.path, json=body)
        if isinstance(response.data, (dict, list)):
            print(json.dumps(response.data, indent=2))
        elif response.data is not None:
            print(response.data)
        return EXIT_SUCCESS

    print(f"Unknown command: {command}", file=sys.stderr)
    return EXIT_FAILED


async def _run(args, config: ClientConfiguration) -> int:
    notifier = Notifier()
    notifier.add_handler(print_notification)

    async with ChatAPIClient.from_config(config, notifier=notifier) as client:
        client.tokens.add_session_invalidated_callback(
            lambda error: print("Session expired, please log in again", file=sys.stderr)
        )
        return await run_command(args, client)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the client."""
    try:
        args = parse_arguments(argv)
        config = load_configuration(args)
        configure_logging(args, config)

        return asyncio.run(_run(args, config))

    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return EXIT_INTERRUPTED
    except AuthFailure as e:
        print(f"Authentication failed: {e.message}", file=sys.stderr)
        return EXIT_AUTH_FAILED
    except (NoRefreshToken, RefreshFailure) as e:
        print(f"Error: {e.user_message}", file=sys.stderr)
        return EXIT_SESSION_EXPIRED
    except TransportFailure as e:
        print(f"Network error: {e.message}", file=sys.stderr)
        return EXIT_TRANSPORT
    except ChatClientError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_FAILED
    except json.JSONDecodeError as e:
        print(f"Invalid JSON body: {e}", file=sys.stderr)
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
