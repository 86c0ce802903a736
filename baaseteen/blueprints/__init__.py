"""
Baaseteen Case Workflow
HTTP blueprints; each module exposes one ``*_bp`` registered by the app factory.
"""

from flask import request

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def pagination_args():
    """``(limit, offset)`` from the query string, clamped to sane bounds.

    Malformed values fall back to the defaults instead of failing the request.
    """
    limit = request.args.get("limit", DEFAULT_PAGE_SIZE, type=int)
    offset = request.args.get("offset", 0, type=int)
    return max(1, min(limit, MAX_PAGE_SIZE)), max(offset, 0)
