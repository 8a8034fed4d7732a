"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter
instance is created in portal/__init__.py with no default limits; this
module applies granular limits per route category.

Usage:
    from portal.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
ADMIN_LIMIT = "30/minute"

WRITE_BLUEPRINTS = ("applications", "registry", "team")
ADMIN_BLUEPRINTS = ("archive",)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Write endpoints:  60/minute
        - Admin archive:    30/minute (cascades touch many rows)
        - Health check:     unlimited (plain app route, no blueprint limit)

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in WRITE_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    for bp_name in ADMIN_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(ADMIN_LIMIT)(bp)

    app.logger.info("Rate limiter configured — write: %s, admin: %s", WRITE_LIMIT, ADMIN_LIMIT)
