"""Request-scoped access to the service container built in the lifespan."""

from fastapi import Request

from descgen.services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services
