"""HTTP routers."""
from fastapi import Request

from storelink.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    """FastAPI dependency: the container built at startup."""
    return request.app.state.container
