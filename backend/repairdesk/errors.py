"""HTTP-facing error taxonomy for the access-control layer.

Each class is a werkzeug HTTPException so the unified handler in
``create_app`` renders it. ``extra`` is merged into the ``error`` payload and
carries navigation hints for the client (where to sign in, how to go back).
"""
from __future__ import annotations
from typing import Any, Dict, Optional
from werkzeug.exceptions import HTTPException


class AccessError(HTTPException):
    extra: Dict[str, Any] = {}

    def __init__(self, description: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
        super().__init__(description=description)
        if extra is not None:
            self.extra = extra


class NotAuthenticated(AccessError):
    code = 401
    name = 'Not Signed In'
    description = 'You must be signed in to access this resource.'


class AccessDenied(AccessError):
    code = 403
    name = 'Access Denied'
    description = 'You do not have permission to access this resource.'


class AccessPending(AccessError):
    code = 503
    name = 'Access Pending'
    description = 'Access information is still loading.'


class AdminActionRejected(AccessError):
    code = 403
    name = 'Action Rejected'
    description = 'This administrative action is not allowed.'


class PermissionUpdateFailed(AccessError):
    code = 503
    name = 'Permission Update Failed'
    description = 'The permission could not be updated. Please try again.'


class NoPartnerAccess(AccessError):
    code = 403
    name = 'No B2B Access'
    description = 'You do not have access to the B2B portal.'


__all__ = [
    'AccessError', 'NotAuthenticated', 'AccessDenied', 'AccessPending',
    'AdminActionRejected', 'PermissionUpdateFailed', 'NoPartnerAccess',
]
