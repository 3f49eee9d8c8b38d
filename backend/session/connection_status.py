"""
Connection status of a consumer session (client side).

Transitions (driven by session.consumer.ConsumerSession):

    DISCONNECTED -> CONNECTING -> CONNECTED
    CONNECTED -(close/error)-> RECONNECTING -(fixed backoff)-> CONNECTING
    CONNECTING -(connect failed)-> RECONNECTING
    any -(stop())-> DISCONNECTED

This is pure data; the transitions live in the consumer.
"""
from enum import Enum

class ConnectionStatus(Enum):
    """Connection lifecycle status of a ConsumerSession."""
    DISCONNECTED = "DISCONNECTED"  # Not running, or stopped
    CONNECTING = "CONNECTING"      # Opening the socket
    CONNECTED = "CONNECTED"        # Socket open, subscription restored
    RECONNECTING = "RECONNECTING"  # Waiting out the backoff interval


# Allowed transitions; anything else is a bug in the consumer loop
TRANSITIONS: dict[ConnectionStatus, frozenset[ConnectionStatus]] = {
    ConnectionStatus.DISCONNECTED: frozenset({ConnectionStatus.CONNECTING}),
    ConnectionStatus.CONNECTING: frozenset({
        ConnectionStatus.CONNECTED,
        ConnectionStatus.RECONNECTING,
        ConnectionStatus.DISCONNECTED,
    }),
    ConnectionStatus.CONNECTED: frozenset({
        ConnectionStatus.RECONNECTING,
        ConnectionStatus.DISCONNECTED,
    }),
    ConnectionStatus.RECONNECTING: frozenset({
        ConnectionStatus.CONNECTING,
        ConnectionStatus.DISCONNECTED,
    }),
}
