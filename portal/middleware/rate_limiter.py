"""
Company Portal
Rate limits.

The shared ``Limiter`` (see ``portal/__init__.py``) has no default limit.
Mutating workflow calls (submit, transition, assign, comment, archive,
action fan-out and responses) get the tighter ``WORKFLOW_WRITE_RATE_LIMIT``;
every other API read shares ``API_READ_RATE_LIMIT``. Health probes are
exempt. Limits are keyed by remote address and switched off under TESTING.
"""

import logging

logger = logging.getLogger(__name__)

WRITE_METHODS = ["POST", "PUT", "PATCH", "DELETE"]

_ADMIN_BLUEPRINTS = ("definition_bp", "collaborator_bp", "notification_bp")


def init_rate_limits(app, limiter):
    if app.config.get("TESTING"):
        logger.debug("Rate limits off under TESTING")
        return

    write_limit = app.config.get("WORKFLOW_WRITE_RATE_LIMIT", "60/minute")
    read_limit = app.config.get("API_READ_RATE_LIMIT", "200/minute")

    workflow = app.blueprints.get("workflow_bp")
    if workflow is not None:
        limiter.limit(write_limit, methods=WRITE_METHODS)(workflow)
        limiter.limit(read_limit, methods=["GET"])(workflow)

    for name in _ADMIN_BLUEPRINTS:
        bp = app.blueprints.get(name)
        if bp is not None:
            limiter.limit(read_limit)(bp)

    health = app.blueprints.get("health_bp")
    if health is not None:
        limiter.exempt(health)

    logger.info("Rate limits: workflow writes %s, reads %s", write_limit, read_limit)
