"""
Strata CLI - styled output helpers built on Click.

    Messages:    success(), error(), warning(), info(), dim(), bold()
    Structure:   banner(), section(), kv(), bullet(), table()
    Status:      badge()

click.style takes care of NO_COLOR / non-tty output, so every helper
degrades to plain text in pipes and under CliRunner.
"""

from __future__ import annotations

import shutil
from typing import Optional, Sequence

import click

_TERM_WIDTH: Optional[int] = None


def _tw() -> int:
    """Terminal width, cached and clamped to a sane range."""
    global _TERM_WIDTH
    if _TERM_WIDTH is None:
        _TERM_WIDTH = max(40, min(shutil.get_terminal_size((80, 24)).columns, 120))
    return _TERM_WIDTH


# ── Messages ────────────────────────────────────────────────────────────────


def success(message: str) -> None:
    click.echo(click.style(message, fg="green"))


def error(message: str) -> None:
    """Print error message in red."""
    click.echo(click.style(message, fg="red"))


def warning(message: str) -> None:
    click.echo(click.style(message, fg="yellow"))


def info(message: str) -> None:
    click.echo(click.style(message, fg="cyan"))


def dim(message: str) -> None:
    click.echo(click.style(message, dim=True))


def bold(message: str) -> str:
    """Return bold-styled text (does not echo)."""
    return click.style(message, bold=True)


# ── Glyphs ──────────────────────────────────────────────────────────────────

_H_TL = "\u250f"   # ┏
_H_TR = "\u2513"   # ┓
_H_BL = "\u2517"   # ┗
_H_BR = "\u251b"   # ┛
_H_H  = "\u2501"   # ━
_H_V  = "\u2503"   # ┃
_L_H  = "\u2500"   # ─

_BULLET = "\u2022"     # •
_CHECK  = "\u2713"     # ✓
_CROSS  = "\u2717"     # ✗
_CIRCLE = "\u25cb"     # ○


# ── Structure ───────────────────────────────────────────────────────────────


def banner(title: str = "Strata", subtitle: str = "", *, fg: str = "cyan") -> None:
    """
    Bordered banner with a centred title.

        ┏━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━┓
        ┃                 Strata                 ┃
        ┗━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━┛
    """
    inner = min(_tw(), 60) - 2
    click.echo(click.style(f"{_H_TL}{_H_H * inner}{_H_TR}", fg=fg))
    click.echo(click.style(f"{_H_V}{title.center(inner)}{_H_V}", fg=fg, bold=True))
    if subtitle:
        click.echo(click.style(f"{_H_V}{subtitle.center(inner)}{_H_V}", fg=fg))
    click.echo(click.style(f"{_H_BL}{_H_H * inner}{_H_BR}", fg=fg))


def section(title: str, *, fg: str = "cyan") -> None:
    """
        ── 20260301_101500 ─────────────────────
    """
    dashes = max(4, _tw() - len(title) - 6)
    click.echo(click.style(f"{_L_H}{_L_H} {title} {_L_H * dashes}", fg=fg, bold=True))


def kv(key: str, value: str, *, key_width: int = 16, indent: int = 2) -> None:
    """Aligned ``key: value`` line."""
    padding = " " * max(1, key_width - len(key) - 1)
    click.echo(f"{' ' * indent}{key}:{padding}{click.style(str(value), fg='cyan')}")


def bullet(text: str, *, indent: int = 2, fg: str = "white") -> None:
    click.echo(f"{' ' * indent}{click.style(_BULLET, fg='cyan')} {click.style(text, fg=fg)}")


def badge(label: str, *, style: str = "ok") -> str:
    """
    Return an inline badge string (not echoed).

        [✓ applied]  [○ pending]  [! missing]
    """
    colours = {
        "ok":   ("green",  _CHECK),
        "skip": ("yellow", _CIRCLE),
        "warn": ("yellow", "!"),
        "fail": ("red",    _CROSS),
        "info": ("cyan",   _BULLET),
    }
    fg, icon = colours.get(style, ("white", _BULLET))
    return click.style(f"[{icon} {label}]", fg=fg)


def table(headers: Sequence[str], rows: Sequence[Sequence[str]], *, indent: int = 2) -> None:
    """
    Minimal aligned table; column widths follow the widest cell.

        Version            Batch  Status
        ────────────────── ────── ─────────
        20260301_101500    1      applied
    """
    prefix = " " * indent
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row[:len(headers)]):
            widths[i] = max(widths[i], len(click.unstyle(str(cell))))
    widths = [w + 2 for w in widths]

    header = "".join(h.ljust(widths[i]) for i, h in enumerate(headers))
    click.echo(f"{prefix}{click.style(header, fg='cyan', bold=True)}")
    click.echo(f"{prefix}{click.style(''.join(_L_H * w for w in widths), dim=True)}")
    for row in rows:
        line = ""
        for i, cell in enumerate(row):
            text = str(cell)
            pad = widths[i] - len(click.unstyle(text)) if i < len(widths) else 0
            line += text + " " * max(pad, 0)
        click.echo(f"{prefix}{line.rstrip()}")
