"""
Audit logging for account and administration events.

Clearance actions go to the clearance_records trail instead
(see services.clearance_record_service).
"""
from typing import Optional, Dict, Any, Tuple
from sqlalchemy.orm import Session
from fastapi import Request

from database.models import AuditLog


def client_info(request: Optional[Request]) -> Tuple[Optional[str], Optional[str]]:
    """(ip_address, user_agent) of a request; forwarded-for wins over the socket peer."""
    if request is None:
        return None, None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")
    return ip_address, user_agent[:500] if user_agent else None


class AuditService:
    """Service for audit logging."""

    @staticmethod
    def log(
        db: Session,
        action: str,
        request: Optional[Request] = None,
        user_id: Optional[int] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> AuditLog:
        """
        Record an action.

        Args:
            db: Database session
            action: Action name (e.g., "login", "user_create")
            request: Request the action came from, for IP and user agent
            user_id: Acting user
            resource_type: Type of resource (e.g., "user", "department")
            resource_id: ID of resource
            details: Additional details

        Returns:
            Created AuditLog
        """
        ip_address, user_agent = client_info(request)
        audit_log = AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            ip_address=ip_address,
            user_agent=user_agent,
            details=details
        )
        db.add(audit_log)
        db.commit()
        return audit_log
