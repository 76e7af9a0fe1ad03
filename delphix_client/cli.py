"""CLI entry point for delphix-client.

Issues a single get/post/delete call against an appliance resource and
prints the response body.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from delphix_client.client import ClientError
from delphix_client.config_loader import ConfigError, load_client_config, merge_overrides
from delphix_client.models import ClientConfig, HttpMethod, Resource, Response
from delphix_client.session import DelphixSession, SessionError


def positive_float(value: str) -> float:
    """Parse and validate a positive float value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive number.
    """
    try:
        result = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number '{value}'.")
    if result <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got {result}.")
    return result


def parse_param(value: str) -> tuple[str, str]:
    """Parse KEY=VALUE format.

    Raises:
        argparse.ArgumentTypeError: If format is invalid.
    """
    if "=" not in value:
        raise argparse.ArgumentTypeError(
            f"Invalid format '{value}'. Expected KEY=VALUE (e.g., 'type=OracleDatabase')"
        )
    key, _, param_value = value.partition("=")
    if not key:
        raise argparse.ArgumentTypeError(f"Invalid format '{value}'. Key cannot be empty.")
    return (key, param_value)


def parse_json_data(value: str) -> Any:
    """Parse a JSON request body.

    Raises:
        argparse.ArgumentTypeError: If value is not valid JSON.
    """
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"Invalid JSON body: {e}")


@dataclass
class RequestArgs:
    """Parsed arguments for a get/post/delete call."""

    method: HttpMethod
    target: str
    params: dict[str, str] = field(default_factory=dict)
    data: Any = None
    config: Path | None = None
    server: str | None = None
    user: str | None = None
    password: str | None = None
    api_version: str | None = None
    timeout: float | None = None
    verbose: bool = False
    login: bool = True


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with get, post and delete subcommands."""
    parser = argparse.ArgumentParser(
        prog="delphix-client",
        description="Call the Delphix appliance JSON API.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="YAML file with server, credentials and API version",
    )
    parser.add_argument("--server", help="Appliance host (overrides config)")
    parser.add_argument("--user", help="API user (overrides config)")
    parser.add_argument("--password", help="API password (overrides config)")
    parser.add_argument(
        "--api-version",
        help="API version as MAJOR.MINOR.MICRO (overrides config)",
    )
    parser.add_argument(
        "--timeout",
        type=positive_float,
        help="Request timeout in seconds (overrides config, default: 10)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log every request and response",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="HTTP method")

    for method in HttpMethod:
        sub = subparsers.add_parser(
            method.value.lower(),
            help=f"Send a {method.value} request",
        )
        sub.add_argument(
            "target",
            help=f"Resource name ({', '.join(r.value for r in Resource)}) or absolute URL",
        )
        sub.add_argument(
            "--param",
            type=parse_param,
            action="append",
            default=[],
            metavar="KEY=VALUE",
            help="Request parameter (can be repeated)",
        )
        sub.add_argument(
            "--data",
            type=parse_json_data,
            help="JSON request body (POST/DELETE; merged with --param)",
        )
        sub.add_argument(
            "--no-login",
            action="store_true",
            help="Skip the session bootstrap and login",
        )

    return parser


def parse_request_args(namespace: argparse.Namespace) -> RequestArgs:
    """Convert argparse namespace to RequestArgs."""
    return RequestArgs(
        method=HttpMethod(namespace.command.upper()),
        target=namespace.target,
        params=dict(namespace.param),
        data=namespace.data,
        config=namespace.config,
        server=namespace.server,
        user=namespace.user,
        password=namespace.password,
        api_version=namespace.api_version,
        timeout=namespace.timeout,
        verbose=namespace.verbose,
        login=not namespace.no_login,
    )


def parse_args(args: list[str] | None = None) -> RequestArgs:
    """Parse command-line arguments and return typed args dataclass.

    Args:
        args: Command-line arguments to parse. If None, uses sys.argv[1:].

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    parser = build_parser()
    namespace = parser.parse_args(args)
    return parse_request_args(namespace)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.DEBUG if verbose else logging.WARNING)


def resolve_config(args: RequestArgs) -> ClientConfig:
    """Load the config file (if any) and apply command-line overrides.

    Raises:
        ConfigError: If the file or an override is invalid.
    """
    config = load_client_config(args.config) if args.config else ClientConfig()
    return merge_overrides(
        config,
        server=args.server,
        api_user=args.user,
        api_password=args.password,
        api_version=args.api_version,
        timeout=args.timeout,
        verbose=True if args.verbose else None,
    )


def build_body(args: RequestArgs) -> Any:
    """Request parameters: --data merged with --param (params win)."""
    if args.data is None:
        return dict(args.params)
    if isinstance(args.data, dict):
        return {**args.data, **args.params}
    if args.params:
        raise ValueError("--param cannot be combined with a non-object --data body")
    return args.data


def main() -> int:
    """Main entry point."""
    try:
        parsed = parse_args()
        return run_request(parsed)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


def run_request(args: RequestArgs) -> int:
    """Run one call and print the result.

    Returns:
        0 for a 2xx response, 1 for any other response or failure,
        2 for configuration errors.
    """
    setup_logging(args.verbose)

    try:
        config = resolve_config(args)
        body = build_body(args)
    except (ConfigError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    with DelphixSession(config) as session:
        try:
            url = _resolve_target(session, args.target)
            if args.login:
                login = session.ensure_session()
                if not login.ok:
                    print(f"Login failed: {login.code} {login.description}", file=sys.stderr)
                    _print_body(login)
                    return 1
            verbs = {
                HttpMethod.GET: session.get,
                HttpMethod.POST: session.post,
                HttpMethod.DELETE: session.delete,
            }
            response = verbs[args.method](url, body)
        except (SessionError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2
        except ClientError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    print(f"{response.code} {response.description}", file=sys.stderr)
    _print_body(response)
    return 0 if response.ok else 1


def _resolve_target(session: DelphixSession, target: str) -> str:
    if "://" in target:
        return target
    return session.resource_url(target)


def _print_body(response: Response) -> None:
    if isinstance(response.body, str):
        print(response.body)
    else:
        print(json.dumps(response.body, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    sys.exit(main())
