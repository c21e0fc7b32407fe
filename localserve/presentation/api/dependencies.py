from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...application.services.access_guard import Caller
from ...core.dependencies import get_persistence_gateway, get_token_service
from ...domain.ports.persistence import PersistenceGateway
from ...services.token_service import TokenService

_bearer_scheme = HTTPBearer(auto_error=False)


def get_current_caller(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
    token_service: TokenService = Depends(get_token_service),
    persistence: PersistenceGateway = Depends(get_persistence_gateway),
) -> Caller:
    """Resolve the bearer token into a caller with its profile ids."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized to access this route. Please login.",
        )

    payload = token_service.verify_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    user_id = payload["user_id"]
    role = payload["role"]
    customer_id = None
    provider_id = None
    if role == "customer":
        customer = persistence.get_customer_by_user_id(user_id)
        customer_id = customer.id if customer else None
    elif role == "provider":
        provider = persistence.get_provider_by_user_id(user_id)
        provider_id = provider.id if provider else None

    return Caller(
        user_id=user_id,
        role=role,
        customer_id=customer_id,
        provider_id=provider_id,
        email=payload.get("email"),
    )


def require_admin(caller: Caller = Depends(get_current_caller)) -> Caller:
    if not caller.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return caller
