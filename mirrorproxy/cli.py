"""
MirrorProxy CLI
===============
Run the proxy in the foreground and watch traffic as it is captured.
"""

from __future__ import annotations

import logging
import time
from functools import partial
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.logging import RichHandler

from mirrorproxy import __version__
from mirrorproxy.app import AppContext, close_logs, show_logs, start_proxy, stop_proxy
from mirrorproxy.config import CONFIG_FILE, load_config, save_config
from mirrorproxy.ui import (
    console,
    print_error,
    print_info,
    print_record,
    print_success,
    print_warning,
    show_banner,
    show_config_status,
    show_record_detail,
    show_records_table,
    show_stats,
)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


# ── Main CLI ─────────────────────────────────────────────────────────────────

@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Verbose (debug) logging")
@click.version_option(__version__, prog_name="mirrorproxy")
@click.pass_context
def main(ctx, verbose):
    """MirrorProxy — transparent HTTP proxy with readable traffic logs"""
    load_dotenv()
    config = load_config()
    if verbose:
        config.ui.verbose = True
    _setup_logging(config.ui.verbose)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@main.command()
@click.option("--port", "-p", type=int, default=None, help="Port to listen on")
@click.option("--host", default=None, help="Address to bind")
@click.option("--quiet", "-q", is_flag=True, help="Do not print requests as they arrive")
@click.option("--export", "export_file", type=click.Path(dir_okay=False), default=None,
              help="Write captured records as JSON on exit")
@click.option("--details", "-d", is_flag=True,
              help="Print headers and body of each request instead of one line")
@click.option("--summary", "-s", type=int, default=0,
              help="On exit, tabulate the last N captured requests")
@click.option("--no-banner", is_flag=True, help="Skip banner display")
@click.pass_context
def serve(ctx, port, host, quiet, export_file, details, summary, no_banner):
    """Start the proxy and stream captured requests until Ctrl+C."""
    config = ctx.obj["config"]
    if host:
        config.proxy.host = host
    if no_banner:
        config.ui.show_banner = False

    if config.ui.show_banner:
        show_banner()

    app = AppContext(config=config)
    result = start_proxy(app, port)
    if not result["ok"]:
        print_error(result["error"])
        raise SystemExit(1)

    print_success(result["message"])
    print_info(f"  proxy mode: {result['curl_example']}")
    print_info(f"  path mode:  {result['path_example']}")
    console.print("[dim]  Press Ctrl+C to stop[/]\n")

    if details:
        show_logs(app, partial(show_record_detail, body_preview=config.ui.body_preview))
    elif not quiet:
        show_logs(app, print_record)

    try:
        while app.server and app.server.is_running:
            time.sleep(0.5)
    except KeyboardInterrupt:
        console.print()
    finally:
        close_logs(app)
        server = app.server
        if summary and server:
            recent = server.store.query(limit=summary)
            if recent:
                show_records_table(list(reversed(recent)))
            else:
                print_warning("No requests were captured")
        if export_file and server:
            Path(export_file).write_text(server.store.export_json())
            print_success(f"Exported {len(server.store)} records to {export_file}")
        result = stop_proxy(app)
        if result["ok"]:
            print_success(f"Proxy stopped. {result['total_requests']} requests captured.")
            show_stats(result)


@main.command()
@click.option("--save", is_flag=True, help="Write the effective configuration to the config file")
@click.pass_context
def config(ctx, save):
    """Show current configuration."""
    cfg = ctx.obj["config"]
    show_config_status({
        "host": cfg.proxy.host,
        "port": cfg.proxy.port,
        "max_logs": cfg.proxy.max_logs,
        "verify_tls": cfg.proxy.verify_tls,
        "upstream_timeout": cfg.proxy.upstream_timeout,
        "max_body_bytes": cfg.capture.max_body_bytes,
        "chunk_size": cfg.capture.chunk_size,
    })
    if save:
        path = save_config(cfg)
        print_success(f"Configuration saved to {path}")
    else:
        print_info(f"Config file: {CONFIG_FILE}")


if __name__ == "__main__":
    main()
