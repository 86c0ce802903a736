"""Shared request and payload helpers.

parse_date:     lenient date parsing for form payloads (None on bad input)
require_actor:  JWT user id from the request context or 401
json_body:      request JSON body as a dict
"""
from datetime import date, datetime

from flask import g, request

from baaseteen.utils.errors import E, api_error

# Tried in order after ISO date / datetime
_DATE_FORMATS = ("%d.%m.%Y", "%d/%m/%Y")


def parse_date(value):
    """Coerce ``2024-05-01``, ``2024-05-01T10:00:00`` or ``01.05.2024`` to a date.

    Anything empty or unparseable gives None; the form sections treat a
    bad date the same as a missing one.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    for parser in (date.fromisoformat, lambda s: datetime.fromisoformat(s).date()):
        try:
            return parser(text)
        except ValueError:
            continue
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def require_actor():
    """Return ``(user_id, None)`` or ``(None, error_response)``.

        actor_id, err = require_actor()
        if err:
            return err
    """
    user_id = getattr(g, "jwt_user_id", None)
    if user_id is None:
        return None, api_error(E.UNAUTHORIZED, "Authentication required")
    return user_id, None


def json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
