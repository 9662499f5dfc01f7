"""
Transient notifications shown on the next rendered page.

Toasts ride on Flask's message flashing. Each one is rendered as its own
element that dismisses itself after ``TOAST_DURATION_MS`` or when closed, so
several toasts can be visible at once without waiting on each other.
"""
from flask import flash, get_flashed_messages

KINDS = ("success", "error", "warning", "info")


def toast(message, kind="info"):
    """Queue a toast for the next page render.

    :param message: Text shown to the user.
    :type message: str
    :param kind: One of ``success``, ``error``, ``warning`` or ``info``.
    :type kind: str
    :raises ValueError: For an unknown kind.
    """
    if kind not in KINDS:
        raise ValueError(f"Unknown toast kind: {kind}")
    flash(message, kind)


def pending_toasts():
    """Return and clear the queued ``(kind, message)`` pairs."""
    return get_flashed_messages(with_categories=True)
