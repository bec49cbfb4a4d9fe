"""CLI entry point for gsprotocol."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import httpx
import uvicorn

from gsprotocol.config import GSProtocolConfig, load_config
from gsprotocol.logging_config import configure_logging
from gsprotocol.server import create_app
from gsprotocol.transport import new_transport


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="gsprotocol",
        description="gsprotocol - HTTP access to Google Cloud Storage objects",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP gateway")
    serve.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: built-in defaults)",
    )
    serve.add_argument("--host", type=str, default=None, help="Host address to bind to (overrides config)")
    serve.add_argument("--port", type=int, default=None, help="Port to listen on (overrides config)")
    serve.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config, default: INFO)",
    )
    serve.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )

    get = sub.add_parser("get", help="Fetch a gs:// URL and write the body to stdout")
    get.add_argument("url", help="gs://bucket/key[#generation]")
    get.add_argument("--head", action="store_true", help="Send HEAD and print headers only")
    get.add_argument(
        "-H",
        "--header",
        action="append",
        default=[],
        metavar="NAME: VALUE",
        help="Extra request header, e.g. 'If-None-Match: \"abc\"' (repeatable)",
    )
    get.add_argument(
        "--service-file",
        type=str,
        default=None,
        help="Service account key file (default: Application Default Credentials)",
    )
    return parser.parse_args(argv)


def _parse_header(value: str) -> tuple[str, str]:
    name, sep, val = value.partition(":")
    if not sep or not name.strip():
        raise ValueError(f"invalid header: {value!r}")
    return name.strip(), val.strip()


async def fetch(url: str, head: bool, headers: list[str], service_file: str | None) -> int:
    """Fetch one gs:// URL, writing the body to stdout.

    Returns:
        The process exit code: 0 for 2xx/304, 1 otherwise.
    """
    request_headers = [_parse_header(h) for h in headers]
    transport = new_transport(service_file=service_file)
    async with httpx.AsyncClient(mounts={"gs://": transport}) as client:
        method = "HEAD" if head else "GET"
        async with client.stream(method, url, headers=request_headers) as resp:
            if head:
                for name, value in resp.headers.multi_items():
                    sys.stdout.write(f"{name}: {value}\n")
            elif resp.is_success:
                async for chunk in resp.aiter_bytes():
                    sys.stdout.buffer.write(chunk)
                sys.stdout.buffer.flush()
            if resp.is_success or resp.status_code == 304:
                return 0
            print(f"{resp.status_code} {resp.reason_phrase}", file=sys.stderr)
            return 1


def serve(args: argparse.Namespace, logger: logging.Logger) -> None:
    """Load configuration, apply CLI overrides and run the gateway."""
    if args.config is None:
        config = GSProtocolConfig()
    else:
        try:
            config = load_config(args.config)
        except FileNotFoundError:
            logger.error("Config file not found: %s", args.config)
            sys.exit(1)
        except Exception as exc:
            logger.error("Failed to load config: %s", exc)
            sys.exit(1)

    # Apply CLI overrides
    if args.host is not None:
        config.server.host = args.host
    if args.port is not None:
        config.server.port = args.port
    if args.log_level is not None:
        config.server.log_level = args.log_level
    if args.log_format is not None:
        config.server.log_format = args.log_format

    configure_logging(level=config.server.log_level, fmt=config.server.log_format)

    logger.info(
        "Starting gsprotocol gateway on %s:%d (storage=%s)",
        config.server.host,
        config.server.port,
        config.storage.backend,
    )

    app = create_app(config)
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.server.log_level.lower(),
        timeout_graceful_shutdown=config.server.shutdown_timeout,
    )


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the gsprotocol CLI.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    args = parse_args(argv)

    # Basic stderr logger until the config has been read
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    logger = logging.getLogger("gsprotocol")

    if args.command == "serve":
        serve(args, logger)
        return

    try:
        code = asyncio.run(fetch(args.url, args.head, args.header, args.service_file))
    except ValueError as exc:
        logger.error("%s", exc)
        sys.exit(2)
    except httpx.TransportError as exc:
        logger.error("Request failed: %s", exc)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
