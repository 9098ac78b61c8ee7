from datetime import datetime
from fastapi.encoders import jsonable_encoder
from typing import Any, Optional, Dict


def _timestamp() -> str:
    return f"{datetime.utcnow().isoformat()}Z"


def success(
    data: Optional[Any] = None,
    message: str = "Success",
    meta: Optional[Dict] = None,
):
    response = {
        "success": True,
        "message": message,
        "data": data,
        "errors": None,
        "timestamp": _timestamp(),
    }

    if meta is not None:
        response["meta"] = meta

    # Decimals and datetimes in order payloads must serialize.
    return jsonable_encoder(response)


def paginated_response(
    items,
    total: int,
    page: int,
    limit: int,
    message: str = "Success",
):
    return success(
        data=items,
        message=message,
        meta={
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": (total + limit - 1) // limit if limit else 0,
        },
    )
