from fastapi import Depends, Request

from .container import ApplicationContainer


def get_container(request: Request) -> ApplicationContainer:
    container = getattr(request.app.state, "container", None)
    if not container:
        raise RuntimeError("Application container not initialised.")
    return container


def get_settings(container: ApplicationContainer = Depends(get_container)):
    return container.settings


def get_persistence_gateway(container: ApplicationContainer = Depends(get_container)):
    return container.persistence


def get_token_service(container: ApplicationContainer = Depends(get_container)):
    return container.token_service


def get_subscription_service(container: ApplicationContainer = Depends(get_container)):
    return container.subscription_service


def get_earnings_service(container: ApplicationContainer = Depends(get_container)):
    return container.earnings_service


def get_reconciliation_service(container: ApplicationContainer = Depends(get_container)):
    return container.reconciliation_service
