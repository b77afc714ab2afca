"""
MirrorProxy Terminal UI
=======================
Rich terminal rendering for the live log feed, record details, and status.
"""

from __future__ import annotations

import json
import time
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from mirrorproxy import __app_name__, __version__
from mirrorproxy.core.models import HeaderMap, LogRecord

# ── Theme ────────────────────────────────────────────────────────────────────

MIRROR_THEME = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "bold green",
    "title": "bold bright_green",
    "dim": "dim white",
    "method": "bold magenta",
    "status.ok": "green",
    "status.redirect": "yellow",
    "status.error": "red",
})

console = Console(theme=MIRROR_THEME)

# ── Banner ───────────────────────────────────────────────────────────────────

BANNER = (
    f"[title]⇄ {__app_name__}[/] [dim]v{__version__}[/] "
    "[dim]|[/] [bold bright_cyan]HTTP traffic mirror[/]"
)


def show_banner() -> None:
    console.print(BANNER)


# ── Messages ─────────────────────────────────────────────────────────────────

def print_info(text: str) -> None:
    console.print(f"[info]ℹ {text}[/]")


def print_success(text: str) -> None:
    console.print(f"[success]✅ {text}[/]")


def print_warning(text: str) -> None:
    console.print(f"[warning]⚠️  {text}[/]")


def print_error(text: str) -> None:
    console.print(f"[error]❌ {text}[/]")


# ── Records ──────────────────────────────────────────────────────────────────

def _status_style(status: Optional[int]) -> str:
    if not status or status >= 400:
        return "status.error"
    if status >= 300:
        return "status.redirect"
    return "status.ok"


def format_record_line(record: LogRecord) -> str:
    """Markup for one line of the live feed."""
    clock = time.strftime("%H:%M:%S", time.localtime(record.timestamp))
    status = record.status_code if record.status_code is not None else "---"
    style = _status_style(record.status_code)
    line = (f"[dim]{clock}[/] [method]{record.method}[/] {record.url} "
            f"[{style}]{status}[/] [dim]({record.duration_ms:.0f}ms, "
            f"{record.response_size}B)[/]")
    if record.error:
        line += f" [error]{record.error}[/]"
    return line


def print_record(record: LogRecord) -> None:
    console.print(format_record_line(record), highlight=False)


def _header_lines(headers: Optional[HeaderMap]) -> List[str]:
    lines = []
    for k, v in (headers or {}).items():
        values = v if isinstance(v, list) else [v]
        for value in values:
            lines.append(f"{k}: {value}")
    return lines


def record_detail_markdown(record: LogRecord, body_preview: int = 2000) -> str:
    """Detailed markdown view of a single record."""
    lines = [f"## {record.method} {record.url}\n"]
    lines.append(f"**ID:** `{record.id}` | **Status:** {record.status_code} | "
                 f"**Duration:** {record.duration_ms:.1f}ms | "
                 f"**Size:** {record.response_size}B\n")

    if record.error:
        lines.append(f"**❌ Error:** {record.error}\n")

    lines.append("### Request Headers\n```")
    lines.extend(_header_lines(record.request_headers))
    lines.append("```\n")

    if record.response_headers is not None:
        lines.append("### Response Headers\n```")
        lines.extend(_header_lines(record.response_headers))
        lines.append("```\n")

    if record.response_body:
        body = record.response_body
        if len(body) > body_preview:
            body = body[:body_preview] + f"\n... ({len(record.response_body) - body_preview} more chars)"
        lines.append("### Response Body\n```")
        lines.append(body)
        lines.append("```\n")

    return "\n".join(lines)


def show_record_detail(record: LogRecord, body_preview: int = 2000) -> None:
    console.print(Markdown(record_detail_markdown(record, body_preview)))


def show_records_table(records: List[LogRecord]) -> None:
    table = Table(title="Captured Requests", show_lines=False)
    table.add_column("Time", style="dim")
    table.add_column("Method", style="method")
    table.add_column("URL")
    table.add_column("Status")
    table.add_column("Size", justify="right")
    table.add_column("Duration", justify="right", style="dim")

    for r in records:
        status = str(r.status_code) if r.status_code is not None else "---"
        table.add_row(
            time.strftime("%H:%M:%S", time.localtime(r.timestamp)),
            r.method,
            r.url,
            f"[{_status_style(r.status_code)}]{status}[/]",
            f"{r.response_size}B",
            f"{r.duration_ms:.0f}ms",
        )
    console.print(table)


# ── Status ───────────────────────────────────────────────────────────────────

def show_stats(stats: Dict[str, Any]) -> None:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Requests", f"{stats['total_requests']} / {stats['capacity']}")
    table.add_row("Errors", str(stats["errors"]))
    table.add_row("Bytes relayed", f"{stats['total_bytes']:,}")
    table.add_row("Avg duration", f"{stats['avg_duration_ms']}ms")
    table.add_row("Methods", json.dumps(stats["methods"]))
    table.add_row("Status codes", json.dumps(stats["status_codes"]))
    console.print(Panel(table, title="[title]Proxy Statistics[/]", border_style="green"))


def show_config_status(config: Dict[str, Any]) -> None:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="dim")
    table.add_column("Value")
    for key, value in config.items():
        table.add_row(key, str(value))
    console.print(Panel(table, title="[title]Configuration[/]", border_style="green"))
