"""Session transport errors."""

from __future__ import annotations


class SessionTransportError(Exception):
    """
    Socket-level failure on a consumer session.

    Server side: the relay detaches the session.
    Client side: the consumer moves to RECONNECTING.
    Never propagated as a fatal process error.
    """
