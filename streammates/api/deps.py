from fastapi import Request, WebSocket

from streammates.services.local_backend import LocalBackend


def get_backend(request: Request) -> LocalBackend:
    return request.app.state.backend


def get_ws_backend(websocket: WebSocket) -> LocalBackend:
    return websocket.app.state.backend
