from __future__ import annotations

import socketio

from debt_negotiator.negotiator import Negotiator
from debt_negotiator.transport.http_app import create_http_app
from debt_negotiator.transport.socket_server import SocketSessionServer


def build_asgi_app(negotiator: Negotiator, *, transport: str, cors_allowed_origins: list[str]):
    """Assemble the ASGI app for the configured transport: socketio, http or both."""
    if transport == "http":
        return create_http_app(negotiator, cors_allowed_origins=cors_allowed_origins)

    origins: list[str] | str = "*" if cors_allowed_origins == ["*"] else cors_allowed_origins
    socket_server = SocketSessionServer(negotiator, cors_allowed_origins=origins)
    if transport == "socketio":
        return socketio.ASGIApp(socket_server.sio)
    return socketio.ASGIApp(
        socket_server.sio,
        other_asgi_app=create_http_app(negotiator, cors_allowed_origins=cors_allowed_origins),
    )
