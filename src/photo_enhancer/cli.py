from __future__ import annotations

import argparse
import logging
import sys

import uvicorn
import yaml

from .config import ServerConfig, load_config
from .server import create_app

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="photo-enhancer",
        description="MCP server that stages images and forwards them to a photo enhancement service.",
    )
    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP/MCP server (default)")
    serve_parser.add_argument("--config", help="YAML config file (default: $PHOTO_ENHANCER_CONFIG)")
    serve_parser.add_argument("--host", help="Bind address (default 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, help="Listen port (default 8787)")
    serve_parser.set_defaults(func=serve_command)

    show_parser = subparsers.add_parser("show-config", help="Print the effective configuration as YAML")
    show_parser.add_argument("--config", help="YAML config file (default: $PHOTO_ENHANCER_CONFIG)")
    show_parser.set_defaults(func=show_config_command)

    return parser


def configure_logging(config: ServerConfig) -> None:
    logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO), format=LOG_FORMAT)


def serve_command(args: argparse.Namespace) -> int:
    config = load_config(
        getattr(args, "config", None),
        host=getattr(args, "host", None),
        port=getattr(args, "port", None),
    )
    configure_logging(config)
    app = create_app(config)
    logging.getLogger("photo-enhancer").info(
        "Photo enhancer MCP server listening on http://%s:%d/mcp", config.host, config.port
    )
    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())
    return 0


def show_config_command(args: argparse.Namespace) -> int:
    config = load_config(getattr(args, "config", None))
    print(yaml.safe_dump(config.as_dict(), sort_keys=True), end="")
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        sys.exit(serve_command(args))
    if hasattr(args, "func"):
        sys.exit(args.func(args))
    parser.print_help()
    sys.exit(2)


if __name__ == "__main__":
    main()
