"""
Console theme and output helpers.

All terminal output of the framework goes through the shared Rich console
defined here, styled with the Nord palette.
"""

import shutil
from typing import List

import pyfiglet
from rich import box
from rich.align import Align
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text
from rich.theme import Theme

from flux import APP_NAME, VERSION


# ----------------------------------------------------------------
# Nord-Themed Colors and Theme Setup
# ----------------------------------------------------------------
class NordColors:
    """Nord color palette definitions for consistent UI styling."""

    POLAR_NIGHT_4: str = "#4C566A"
    SNOW_STORM_1: str = "#D8DEE9"
    SNOW_STORM_2: str = "#E5E9F0"
    FROST_1: str = "#8FBCBB"
    FROST_2: str = "#88C0D0"
    FROST_3: str = "#81A1C1"
    FROST_4: str = "#5E81AC"
    RED: str = "#BF616A"
    YELLOW: str = "#EBCB8B"
    GREEN: str = "#A3BE8C"

    @classmethod
    def get_frost_gradient(cls, steps: int = 4) -> List[str]:
        """Returns a gradient using the frost color palette."""
        frosts = [cls.FROST_1, cls.FROST_2, cls.FROST_3, cls.FROST_4]
        return frosts[:steps]


nord_theme = Theme(
    {
        "banner": f"bold {NordColors.FROST_2}",
        "header": f"bold {NordColors.FROST_2}",
        "info": NordColors.GREEN,
        "warning": NordColors.YELLOW,
        "error": NordColors.RED,
        "debug": NordColors.POLAR_NIGHT_4,
        "success": NordColors.GREEN,
    }
)

console = Console(theme=nord_theme)


def set_colors(enabled: bool) -> None:
    """Toggle colored output on the shared console."""
    console.no_color = not enabled


# ----------------------------------------------------------------
# UI Helper Functions
# ----------------------------------------------------------------
def create_header(title: str = APP_NAME) -> Panel:
    """
    Generate an ASCII art header with gradient styling using Pyfiglet.
    Falls back to smaller fonts on narrow terminals.
    """
    term_width, _ = shutil.get_terminal_size((80, 24))
    fonts: List[str] = ["small", "slant", "mini", "digital"]
    if term_width < 60:
        fonts = ["mini", "digital"]

    ascii_art = ""
    for font in fonts:
        try:
            fig = pyfiglet.Figlet(font=font, width=min(term_width - 10, 120))
            ascii_art = fig.renderText(title)
            if ascii_art.strip():
                break
        except pyfiglet.FigletError:
            continue

    ascii_lines = [line for line in ascii_art.splitlines() if line.strip()]
    if not ascii_lines:
        ascii_lines = [title]
    colors = NordColors.get_frost_gradient(len(ascii_lines))
    combined_text = Text()

    for i, line in enumerate(ascii_lines):
        color = colors[i % len(colors)]
        combined_text.append(Text(line, style=f"bold {color}"))
        if i < len(ascii_lines) - 1:
            combined_text.append("\n")

    return Panel(
        Align.center(combined_text),
        border_style=NordColors.FROST_1,
        padding=(1, 2),
        title=Text(f"{APP_NAME} v{VERSION}", style=f"bold {NordColors.SNOW_STORM_2}"),
        title_align="right",
        box=box.ROUNDED,
    )


def print_message(
    text: str, style: str = NordColors.FROST_2, prefix: str = "•"
) -> None:
    """Print a styled message with a prefix."""
    console.print(f"[{style}]{prefix} {escape(text)}[/{style}]")


def print_success(message: str) -> None:
    print_message(message, NordColors.GREEN, "✓")


def print_warning(message: str) -> None:
    print_message(message, NordColors.YELLOW, "⚠")


def print_error(message: str) -> None:
    print_message(message, NordColors.RED, "✗")


def print_skipped(message: str) -> None:
    print_message(message, NordColors.YELLOW, "○")


def print_separator(char: str = "─") -> None:
    width = min(console.width, 80)
    console.print(f"[{NordColors.POLAR_NIGHT_4}]{char * width}[/]")
