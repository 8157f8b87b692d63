"""Reactor-style TCP building blocks: event loops, channels, acceptors, connectors, HTTP handling and framed message dispatch."""

__version__ = "1.0.0"

__all__ = [
    "acceptor",
    "app_server",
    "channel",
    "connector",
    "event_loop",
    "event_loop_thread",
    "http_request",
    "http_server",
    "http_types",
    "inet_address",
    "poller",
]