from rich.console import Console
from rich.markup import escape
from functools import lru_cache

_verbose = False


@lru_cache(maxsize=1)
def get_console() -> Console:
    """Get or create the shared Console instance"""
    return Console()


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = enabled


def is_verbose() -> bool:
    return _verbose


def debug(message: str) -> None:
    """Log a message only when verbose output was requested"""
    if _verbose:
        get_console().log(f"[dim]{escape(message)}[/]", highlight=False)
