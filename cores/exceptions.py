import logging

from django.db import DatabaseError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


def platform_exception_handler(exc, context):
    """
    Render every API error as {"error": <code>, "detail": ...}.

    Storage failures surface as 503 so clients never mistake them for a
    missing attempt or a state transition.
    """
    if isinstance(exc, DatabaseError):
        view = context.get('view')
        logger.error("storage_unavailable view=%s", type(view).__name__ if view else None, exc_info=exc)
        return Response({"error": "STORAGE_UNAVAILABLE"}, status=status.HTTP_503_SERVICE_UNAVAILABLE)

    response = exception_handler(exc, context)
    if response is None:
        return None

    codes = exc.get_codes() if hasattr(exc, 'get_codes') else None
    if isinstance(codes, str):
        body = {"error": codes.upper(), "detail": response.data.get('detail') if isinstance(response.data, dict) else response.data}
    else:
        body = {"error": "INVALID_INPUT", "detail": response.data}

    extra = getattr(exc, 'extra', None)
    if extra:
        body.update(extra)
    response.data = body
    return response
