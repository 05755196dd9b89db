# render_audit_bridge/cli.py
# Defines the command-line interface using argparse.

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import IO, Any, Sequence

import uvicorn

from render_audit_bridge import __version__
from render_audit_bridge.audit import AuditClient
from render_audit_bridge.backends import backend_from_config
from render_audit_bridge.config import BridgeConfig, load_config
from render_audit_bridge.render import render_page
from render_audit_bridge.server import create_app
from render_audit_bridge.shaper import shape_audit, shape_render

log = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    level = logging.INFO if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _print_json(body: dict[str, Any], stdout: IO[str]) -> None:
    print(json.dumps(body, indent=2, ensure_ascii=False), file=stdout)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Rendered HTML excerpts and PageSpeed summaries for agents.",
        prog="render_audit_bridge",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging output to stderr.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- serve ---
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP tool server.")
    serve_parser.add_argument("--host", default=None, help="Bind address.")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port.")

    # --- render ---
    render_parser = subparsers.add_parser(
        "render", help="Render a URL and print the excerpt payload as JSON."
    )
    render_parser.add_argument("url", help="The URL to render.")
    render_parser.add_argument("--viewport", choices=["desktop", "mobile"], default="desktop")
    render_parser.add_argument("--timeout-ms", type=int, default=None)
    render_parser.add_argument("--body-kb", type=float, default=None)
    render_parser.add_argument("--head-kb", type=float, default=None)
    render_parser.add_argument(
        "--keep-scripts",
        action="store_true",
        help="Keep <script>/<style> blocks in the excerpt.",
    )
    render_parser.add_argument(
        "--no-extract",
        action="store_true",
        help="Skip structured metadata extraction.",
    )
    render_parser.add_argument(
        "--renderer",
        choices=["playwright", "static"],
        default=None,
        help="Override the configured renderer.",
    )

    # --- audit ---
    audit_parser = subparsers.add_parser(
        "audit", help="Run a PageSpeed Insights audit and print the summary as JSON."
    )
    audit_parser.add_argument("url", help="The URL to audit.")
    audit_parser.add_argument(
        "--categories",
        default=None,
        help="Comma-separated: performance, accessibility, best-practices, seo.",
    )
    audit_parser.add_argument("--viewport", choices=["desktop", "mobile"], default="desktop")
    audit_parser.add_argument(
        "--include-full",
        action="store_true",
        help="Include the full provider report.",
    )
    return parser


def _render_params(args: argparse.Namespace) -> dict[str, Any]:
    params: dict[str, Any] = {
        "viewport": args.viewport,
        "strip_scripts": not args.keep_scripts,
        "return_extracted": not args.no_extract,
    }
    if args.timeout_ms is not None:
        params["timeout_ms"] = args.timeout_ms
    if args.body_kb is not None:
        params["html_body_kb"] = args.body_kb
    if args.head_kb is not None:
        params["head_limit_kb"] = args.head_kb
    return params


def _serve(config: BridgeConfig, host: str | None, port: int | None) -> int:
    uvicorn.run(
        create_app(config),
        host=host or config.host,
        port=port or config.port,
    )
    return 0


async def async_main(
    argv: Sequence[str] | None = None,
    stdout: IO[str] | None = None,
    config: BridgeConfig | None = None,
) -> int:
    """Async entry point for the one-shot commands."""
    stdout = stdout or sys.stdout
    args = _build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    config = config or load_config()

    if args.command == "serve":
        print("Use main() to run the server; it owns the event loop.", file=sys.stderr)
        return 2

    if args.command == "render":
        if args.renderer:
            config = dataclasses.replace(config, renderer=args.renderer)
        backend = backend_from_config(config)
        result = await render_page(args.url, _render_params(args), backend, config)
        _, body = shape_render(result)
        _print_json(body, stdout)
        return 0 if result.error is None else 1

    # args.command == "audit"
    params: dict[str, Any] = {"viewport": args.viewport, "include_full": args.include_full}
    if args.categories:
        params["categories"] = args.categories
    outcome = await AuditClient(config).run(args.url, params)
    _, body = shape_audit(outcome)
    _print_json(body, stdout)
    return 0 if "note" not in body else 1


def main(argv: Sequence[str] | None = None) -> int:
    """Synchronous wrapper for the CLI entry point."""
    args_list = list(sys.argv[1:] if argv is None else argv)
    args = _build_parser().parse_args(args_list)
    if args.command == "serve":
        # uvicorn owns the event loop for the server.
        _configure_logging(args.verbose)
        return _serve(load_config(), args.host, args.port)
    return asyncio.run(async_main(args_list))


if __name__ == "__main__":
    sys.exit(main())
