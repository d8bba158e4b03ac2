from functools import wraps
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request
from flashbites import db
from flashbites.errors import APIError, Forbidden
from flashbites.models.models import User


def current_user() -> User:
    """The active user behind the request's access token"""
    user = db.session.get(User, int(get_jwt_identity()))
    if not user:
        raise APIError('User not found', 404)
    if not user.is_active:
        raise Forbidden('Account is deactivated')
    return user


def role_required(*roles):
    """Require a valid access token whose role claim is one of ``roles``"""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            role = get_jwt().get('role')
            if role not in roles:
                raise Forbidden(f"Role '{role}' is not allowed to perform this action")
            return fn(*args, **kwargs)
        return wrapper
    return decorator
