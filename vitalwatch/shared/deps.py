from fastapi import Depends
from starlette.requests import HTTPConnection

from vitalwatch.core.backend import BackendClient
from vitalwatch.core.services import Services


def get_services(connection: HTTPConnection) -> Services:
    """Services built in the lifespan; works for both HTTP requests and WebSockets."""
    return connection.app.state.services


def get_backend(services: Services = Depends(get_services)) -> BackendClient:
    return services.backend
