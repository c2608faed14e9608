from fastapi import Request

from stockview.services.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    """The ServiceContainer built in the application lifespan."""
    return request.app.state.services
