"""Response envelope shared by every endpoint."""

from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder

from ...domain.models import Subscription


def success(message: str, data: Any = None, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True, "message": message, "data": jsonable_encoder(data)}
    body.update(jsonable_encoder(extra))
    return body


def serialize_subscription(subscription: Subscription) -> Dict[str, Any]:
    data = asdict(subscription)
    data["is_active"] = subscription.is_active()
    return data


def pagination(page: int, limit: int, total: int) -> Dict[str, Optional[int]]:
    return {
        "current_page": page,
        "total_pages": (total + limit - 1) // limit if limit else 0,
        "total_results": total,
    }
