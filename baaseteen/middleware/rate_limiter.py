"""
Per-blueprint rate limits (Flask-Limiter).

The ``Limiter`` in ``baaseteen/__init__.py`` carries no default limit;
limits are attached here once all blueprints are registered:

    workflow mutations   WORKFLOW_RATE_LIMIT  (default 60/minute per IP)
    notification/master  READ_RATE_LIMIT      (default 200/minute per IP)
    health probes        exempt

Nothing is limited when TESTING is set.
"""

import logging

logger = logging.getLogger(__name__)

LIMIT_GROUPS = {
    "WORKFLOW_RATE_LIMIT": ("case_bp", "counseling_bp", "case_identification_bp", "cover_letter_bp"),
    "READ_RATE_LIMIT": ("notification_bp", "workflow_stage_bp"),
}
EXEMPT_BLUEPRINTS = ("health_bp",)


def init_rate_limits(app, limiter):
    if app.config.get("TESTING"):
        logger.debug("Rate limiting disabled under TESTING")
        return

    applied = {}
    for config_key, blueprint_names in LIMIT_GROUPS.items():
        limit = app.config[config_key]
        for name in blueprint_names:
            bp = app.blueprints.get(name)
            if bp is not None:
                limiter.limit(limit)(bp)
                applied[name] = limit

    for name in EXEMPT_BLUEPRINTS:
        bp = app.blueprints.get(name)
        if bp is not None:
            limiter.exempt(bp)

    logger.info("Rate limits applied: %s", applied)
