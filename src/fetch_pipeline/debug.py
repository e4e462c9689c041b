"""
Rich request/response panels, enabled with ``debug=True`` or
FETCH_PIPELINE_DEBUG=1.
"""
import json
from typing import Any, Mapping, Optional

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax

SENSITIVE_HEADERS = frozenset({"authorization", "x-api-key", "cookie", "set-cookie", "proxy-authorization"})

console = Console(stderr=True)


def mask_sensitive(value: Optional[str], show_chars: int = 4) -> str:
    """
    Mask sensitive values for logging.

    Args:
        value: Value to mask
        show_chars: Number of characters to show before masking

    Returns:
        str: Masked value
    """
    if not value:
        return "<none>"
    if len(value) <= show_chars:
        return "*" * len(value)
    return value[:show_chars] + "***"


def mask_headers(headers: Mapping[str, str]) -> dict:
    """Copy of ``headers`` with credentials masked."""
    return {
        key: mask_sensitive(value, 15 if key.lower() == "authorization" else 4)
        if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


def _format_body(body: Any) -> str:
    """Format body for pretty printing."""
    if body is None:
        return ""
    if isinstance(body, (dict, list)):
        return json.dumps(body, indent=2, ensure_ascii=False)
    if isinstance(body, bytes):
        try:
            return body.decode("utf-8")
        except UnicodeDecodeError:
            return f"<{len(body)} bytes>"
    return str(body)


def print_request(method: str, url: str, headers: Mapping[str, str], body: Any = None) -> None:
    console.print(Panel(f"[bold cyan]{method}[/bold cyan] {url}", title="[bold blue]Request[/bold blue]"))
    console.print("[bold]Headers:[/bold]", mask_headers(headers))
    if isinstance(body, (dict, list)):
        console.print(Panel(Syntax(_format_body(body), "json", theme="monokai"), title="[bold]Request Body[/bold]"))


def print_response(
    status_code: int,
    status_message: str,
    url: str,
    headers: Mapping[str, str],
    body: Any = None,
    from_cache: bool = False,
) -> None:
    color = "green" if 200 <= status_code < 300 else "yellow" if status_code < 400 else "red"
    cached = " [dim](cache)[/dim]" if from_cache else ""
    console.print(Panel(
        f"[bold {color}]{status_code} {status_message}[/bold {color}]{cached}",
        title=f"[bold blue]Response[/bold blue] ({url})",
    ))
    console.print("[bold]Headers:[/bold]", mask_headers(headers))
    if body:
        lexer = "json" if isinstance(body, (dict, list)) else "text"
        console.print(Panel(Syntax(_format_body(body), lexer, theme="monokai"), title=f"[bold]Response Body[/bold] (URL: {url})"))


def print_error(error: BaseException) -> None:
    console.print(f"[red][ERROR][/red] {type(error).__name__}: {error}")
