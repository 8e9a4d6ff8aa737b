"""Command line: ``mcp-anything deploy`` and ``mcp-anything serve``."""

import argparse
import asyncio
import sys
from typing import Any, Dict, List, Optional

from . import __version__
from .config import ServerConfig
from .deploy import LocalPublisher, deploy
from .errors import MCPAnythingError
from .server import async_main, configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcp-anything",
        description="Convert any OpenAPI spec to a Model Context Protocol (MCP) server",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    dep = sub.add_parser("deploy", help="Compile an OpenAPI spec and publish the server artifact")
    dep.add_argument("--openapi", required=True, help="OpenAPI specification URL or file")
    dep.add_argument("--client-id", required=True, help="OAuth client ID for the target API")
    dep.add_argument(
        "--client-secret", required=True, help="OAuth client secret for the target API"
    )
    dep.add_argument("--name", help="Name for the MCP server deployment")
    dep.add_argument("--oauth-issuer", help="OAuth issuer URL for auto-discovery (.well-known)")
    dep.add_argument("--auth-url", help="OAuth authorization URL (if not using discovery)")
    dep.add_argument("--token-url", help="OAuth token URL (if not using discovery)")
    dep.add_argument("--public-url", help="Public origin the server will be reachable at")
    dep.add_argument("--out", default="dist", help="Directory to write the artifact to")

    srv = sub.add_parser("serve", help="Run the MCP server")
    srv.add_argument("--openapi", help="OpenAPI specification URL or file")
    srv.add_argument("--catalog", help="Pre-compiled catalog.json")
    srv.add_argument("--host", help="Bind address")
    srv.add_argument("--port", type=int, help="Bind port")
    srv.add_argument("--public-url", help="Public origin of this server")
    return parser


def _overrides(args: argparse.Namespace, mapping: Dict[str, str]) -> Dict[str, Any]:
    return {
        field: getattr(args, attr)
        for attr, field in mapping.items()
        if getattr(args, attr, None) is not None
    }


def run_deploy(args: argparse.Namespace) -> int:
    config = ServerConfig(
        **_overrides(
            args,
            {
                "openapi": "openapi_url",
                "client_id": "client_id",
                "client_secret": "client_secret",
                "name": "name",
                "oauth_issuer": "oauth_issuer",
                "auth_url": "authorize_url",
                "token_url": "token_url",
                "public_url": "public_url",
            },
        )
    )
    print("Pre-deployment checklist:")
    print("  1. Create an OAuth app for the target service")
    print(f"  2. Set its redirect URL to: {config.public_url.rstrip('/')}/oauth/callback")
    print()

    try:
        result = asyncio.run(deploy(config, LocalPublisher(args.out, config.public_url)))
    except MCPAnythingError as e:
        print(f"Deployment failed: {e}", file=sys.stderr)
        return 1

    print(f"Artifact for '{result.name}' written to {args.out}")
    print(f"MCP Server URL: {result.url}")
    print(f"Start it with: cd {args.out} && mcp-anything serve")
    return 0


def run_serve(args: argparse.Namespace) -> int:
    config = ServerConfig(
        **_overrides(
            args,
            {
                "openapi": "openapi_url",
                "catalog": "catalog_path",
                "host": "host",
                "port": "port",
                "public_url": "public_url",
            },
        )
    )
    asyncio.run(async_main(config))
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging()
    if args.command == "deploy":
        sys.exit(run_deploy(args))
    sys.exit(run_serve(args))


if __name__ == "__main__":
    main()
