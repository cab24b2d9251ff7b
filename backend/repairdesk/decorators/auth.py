from functools import wraps
from flask import current_app, request
from repairdesk.errors import AccessDenied, AccessPending, NoPartnerAccess, NotAuthenticated
from repairdesk.services.guard import GuardState, RouteGuard
from repairdesk.services.session import current_access


def _enforce(guard: RouteGuard):
    access = current_access()
    state = guard.evaluate(access)
    if state is GuardState.AUTHORIZED:
        return access
    if state is GuardState.UNAUTHENTICATED:
        raise NotAuthenticated(extra={'login': guard.login_url})
    if state is GuardState.UNAUTHORIZED:
        raise AccessDenied(extra={'back': request.referrer or current_app.config['HOME_URL']})
    raise AccessPending()


def require_permissions(*keys, require_all: bool = False):
    """Guard a view: any of ``keys`` by default, all of them with ``require_all``.

    No keys means any signed-in principal passes.
    """
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            guard = RouteGuard(*keys, require_all=require_all, login_url=current_app.config['LOGIN_URL'])
            _enforce(guard)
            return fn(*args, **kwargs)
        return wrapper
    return outer


def require_signed_in(fn):
    return require_permissions()(fn)


def require_partner_role(fn):
    """Guard a B2B view: partner role, resolved partner record, partner approved."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        access = _enforce(RouteGuard(login_url=current_app.config['LOGIN_URL']))
        redirect = {'redirect': current_app.config['HOME_URL']}
        identity = access.b2b.snapshot()
        if not identity.is_partner_user or identity.partner is None:
            raise NoPartnerAccess(extra=redirect)
        if not identity.partner_active:
            raise NoPartnerAccess('Your partner account is pending approval.', extra=redirect)
        return fn(*args, **kwargs)
    return wrapper
