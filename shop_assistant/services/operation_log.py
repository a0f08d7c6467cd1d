from fastapi import Request
from sqlalchemy.orm import Session

from shop_assistant.models.account import UserOperationLog


def get_client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client:
        return request.client.host
    return "unknown"


def log_operation(
    db: Session,
    user_id: int | None,
    operation_type: str,
    operation_desc: str,
    request: Request | None = None,
    status: str = "success",
) -> None:
    db.add(
        UserOperationLog(
            user_id=user_id,
            operation_type=operation_type,
            operation_desc=operation_desc[:255],
            status=status,
            ip_address=get_client_ip(request) if request else None,
            user_agent=request.headers.get("user-agent") if request else None,
        )
    )
