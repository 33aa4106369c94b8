"""CLI entry point for request-pipeline.

Sends one request through the pipeline and prints the response.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

import httpx

from request_pipeline.client import Client
from request_pipeline.config_loader import ConfigError, load_client_config
from request_pipeline.context import RequestCancelledError, RequestContext
from request_pipeline.encoder import CONTENT_TYPE_JSON, EncodingError
from request_pipeline.models import HTTP_METHODS, ClientConfig

DEFAULT_TIMEOUT = 30.0


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


def non_negative_int(value: str) -> int:
    """Parse and validate a non-negative integer value.

    Raises:
        argparse.ArgumentTypeError: If value is not an integer >= 0.
    """
    try:
        result = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid integer '{value}'.")
    if result < 0:
        raise argparse.ArgumentTypeError(f"Value must be >= 0, got {result}.")
    return result


def parse_header(value: str) -> tuple[str, str]:
    """Parse NAME:VALUE format.

    Raises:
        argparse.ArgumentTypeError: If format is invalid.
    """
    name, sep, header_value = value.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(
            f"Invalid header '{value}'. Expected NAME:VALUE (e.g., 'Accept:application/json')"
        )
    return name.strip(), header_value.strip()


@dataclass
class RequestArgs:
    """Parsed command-line arguments."""

    method: str
    url: str
    config: Path | None
    data: str | None
    json: bool
    headers: list[tuple[str, str]]
    retry: int | None
    retry_interval: float | None
    timeout: float | None
    include_headers: bool
    verbose: bool


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="request-pipeline",
        description="Send an HTTP request with encoded parameters, retries and cookies.",
    )
    parser.add_argument(
        "method",
        type=str.upper,
        choices=sorted(HTTP_METHODS),
        metavar="METHOD",
        help="HTTP method (GET, POST, PUT, ...)",
    )
    parser.add_argument("url", help="URL, or path appended to the configured prefix")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML client config file",
    )
    parser.add_argument(
        "-d",
        "--data",
        default=None,
        help="Request parameters, e.g. 'name=x&file=@file:/tmp/a.txt' or a JSON document",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Send data with Content-Type: application/json",
    )
    parser.add_argument(
        "-H",
        "--header",
        dest="headers",
        type=parse_header,
        action="append",
        default=[],
        metavar="NAME:VALUE",
        help="Extra header (repeatable)",
    )
    parser.add_argument(
        "--retry",
        type=non_negative_int,
        default=None,
        help="Retries after the first attempt (overrides config)",
    )
    parser.add_argument(
        "--retry-interval",
        type=positive_float,
        default=None,
        help="Seconds between attempts (overrides config)",
    )
    parser.add_argument(
        "--timeout",
        type=positive_float,
        default=None,
        help=f"Overall deadline in seconds (default: config timeout, else {DEFAULT_TIMEOUT})",
    )
    parser.add_argument(
        "-i",
        "--include",
        dest="include_headers",
        action="store_true",
        help="Print response headers",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def parse_args(args: list[str] | None = None) -> RequestArgs:
    """Parse command-line arguments and return typed args dataclass.

    Args:
        args: Command-line arguments to parse. If None, uses sys.argv[1:].

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    namespace = build_parser().parse_args(args)
    return RequestArgs(
        method=namespace.method,
        url=namespace.url,
        config=namespace.config,
        data=namespace.data,
        json=namespace.json,
        headers=namespace.headers,
        retry=namespace.retry,
        retry_interval=namespace.retry_interval,
        timeout=namespace.timeout,
        include_headers=namespace.include_headers,
        verbose=namespace.verbose,
    )


def build_client(args: RequestArgs, transport: httpx.Client | None = None) -> Client:
    """Create a Client from the config file and command-line overrides."""
    config = load_client_config(args.config) if args.config else ClientConfig()
    client = Client(config, transport=transport)
    for name, value in args.headers:
        client.set_header(name, value)
    if args.json:
        client.set_content_type(CONTENT_TYPE_JSON)
    if args.retry is not None or args.retry_interval is not None:
        client.set_retry(
            args.retry if args.retry is not None else config.retry.count,
            args.retry_interval if args.retry_interval is not None else config.retry.interval,
        )
    client.set_context(RequestContext.with_timeout(args.timeout or config.timeout or DEFAULT_TIMEOUT))
    return client


def run_request(args: RequestArgs, out: TextIO = sys.stdout, transport: httpx.Client | None = None) -> int:
    """Send the request described by *args* and print the response."""
    try:
        client = build_client(args, transport=transport)
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    with client:
        try:
            response = client.do_request(args.method, args.url, args.data)
        except EncodingError as e:
            print(f"Error building request: {e}", file=sys.stderr)
            return 1
        except RequestCancelledError as e:
            print(f"Request cancelled: {e}", file=sys.stderr)
            return 1
        except httpx.HTTPError as e:
            print(f"Request failed: {e}", file=sys.stderr)
            return 1

        with response:
            out.write(f"{response.raw.http_version} {response.status_code} {response.raw.reason_phrase}\n")
            if args.include_headers:
                for name, value in response.headers.multi_items():
                    out.write(f"{name}: {value}\n")
                out.write("\n")
            out.write(response.text)
            if response.text and not response.text.endswith("\n"):
                out.write("\n")
    return 0


def main() -> int:
    """Main entry point."""
    try:
        args = parse_args()
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.WARNING,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        return run_request(args)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
