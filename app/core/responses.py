from typing import Any, Dict, Optional


def success(data: Any = None, message: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    """Standard success envelope: {"success": true, "data": ..., [message], [pagination]}"""
    body: Dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    body.update({k: v for k, v in extra.items() if v is not None})
    return body


def pagination(page: int, limit: int, total: int) -> Dict[str, Any]:
    total_pages = (total + limit - 1) // limit if limit else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": total_pages,
        "has_more": page < total_pages,
    }
