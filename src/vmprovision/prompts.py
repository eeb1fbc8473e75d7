"""Confirmation strategies for attended and unattended runs."""

from typing import Callable

import typer

Confirm = Callable[[str], bool]


def always_yes(question: str) -> bool:
    return True


def always_no(question: str) -> bool:
    return False


def interactive(question: str) -> bool:
    return typer.confirm(question, default=False)


def for_mode(unattended: bool) -> Confirm:
    """Unattended runs never block on a prompt; attended runs ask the operator."""
    return always_yes if unattended else interactive
