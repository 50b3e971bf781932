from fastapi import Request, WebSocket

from ..container import Container


def get_container(request: Request) -> Container:
    """Container created by the application lifespan."""
    return request.app.state.container


def get_ws_container(websocket: WebSocket) -> Container:
    return websocket.app.state.container
