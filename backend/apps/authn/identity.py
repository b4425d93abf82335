"""
Anonymous user identity.

Each browser gets an opaque UUID in a long-lived cookie on first contact.
The id is never reassigned while the cookie is valid; session state and
chat history are keyed by it.
"""
import re
import uuid
import logging
from typing import Callable, Optional
from functools import wraps

from django.conf import settings
from django.http import HttpRequest

logger = logging.getLogger(__name__)

DEFAULT_COOKIE_NAME = 'userId'
DEFAULT_COOKIE_MAX_AGE = 60 * 60 * 24 * 30  # 30 days

# Accept only ids we could have issued
USER_ID_PATTERN = re.compile(r'^[0-9a-fA-F-]{8,64}$')


def get_cookie_name() -> str:
    return getattr(settings, 'USER_ID_COOKIE', DEFAULT_COOKIE_NAME)


def get_user_id_from_request(request: HttpRequest) -> Optional[str]:
    """
    Read the user id cookie.

    Returns:
        The id if present and well-formed, None otherwise
    """
    user_id = request.COOKIES.get(get_cookie_name())
    if user_id and USER_ID_PATTERN.match(user_id):
        return user_id
    return None


def issue_user_id() -> str:
    return str(uuid.uuid4())


def identity_required(view_func: Callable) -> Callable:
    """
    Decorator that resolves the caller's identity.

    Attaches the id to request.user_id, issuing a new one (and setting the
    cookie on the response) when the request carries none.

    Usage:
        @identity_required
        def my_view(request):
            user_id = request.user_id
            ...
    """
    @wraps(view_func)
    def wrapper(request: HttpRequest, *args, **kwargs):
        user_id = get_user_id_from_request(request)
        issued = user_id is None

        if issued:
            user_id = issue_user_id()
            logger.debug(f"Issued new user id {user_id}")

        request.user_id = user_id
        response = view_func(request, *args, **kwargs)

        if issued:
            response.set_cookie(
                get_cookie_name(),
                user_id,
                max_age=getattr(settings, 'USER_ID_COOKIE_MAX_AGE', DEFAULT_COOKIE_MAX_AGE),
                httponly=True,
                samesite='Lax',
                secure=not getattr(settings, 'DEBUG', False),
                path='/',
            )
        return response

    return wrapper
