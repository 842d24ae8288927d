"""
Command line entry point.

    webrelay proxy [--host HOST] [--port PORT]
    webrelay serve --public-dir DIR [--basic-auth USER:PASSWORD] [--host HOST] [--port PORT]
"""

import argparse
import logging
from typing import List, Optional

from webrelay.reverse_proxy import ReverseProxy
from webrelay.routing import App
from webrelay.server import create_app, run
from webrelay.vars import PROXY_HOST, PROXY_PORT, SERVER_HOST, SERVER_PORT

logger = logging.getLogger("uvicorn.error")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="webrelay", description="Routing web server and reverse proxy"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    proxy_parser = subparsers.add_parser(
        "proxy", help="Run a transparent reverse proxy"
    )
    proxy_parser.add_argument("--host", default=PROXY_HOST, help="Address to bind")
    proxy_parser.add_argument("--port", type=int, default=PROXY_PORT, help="Port to bind")

    serve_parser = subparsers.add_parser("serve", help="Serve a directory of files")
    serve_parser.add_argument(
        "--public-dir", required=True, help="Directory served at the site root"
    )
    serve_parser.add_argument(
        "--basic-auth", metavar="USER:PASSWORD", help="Require HTTP basic auth"
    )
    serve_parser.add_argument("--host", default=SERVER_HOST, help="Address to bind")
    serve_parser.add_argument("--port", type=int, default=SERVER_PORT, help="Port to bind")

    args = parser.parse_args(argv)
    if getattr(args, "basic_auth", None) and ":" not in args.basic_auth:
        parser.error("--basic-auth must be USER:PASSWORD")
    return args


def build_target(args: argparse.Namespace):
    if args.command == "proxy":
        return ReverseProxy()

    app = App()
    if args.basic_auth:
        user, _, password = args.basic_auth.partition(":")
        app.basic_auth(user, password)
    app.public_dir(args.public_dir)
    return app


def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)
    target = build_target(args)
    logger.info(f"[CLI] Starting {args.command} on {args.host}:{args.port}")
    run(create_app(target), args.host, args.port)


if __name__ == "__main__":
    main()
