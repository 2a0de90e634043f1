"""aiohttp application bootstrap utilities."""

from __future__ import annotations

import logging

from aiohttp import web

from friend_club.app import FriendClub
from friend_club.config import core

from .routes import CLUB_KEY, routes

logger = logging.getLogger(__name__)


def create_app(club: FriendClub | None = None, *, manage_lifecycle: bool = True) -> web.Application:
    """Build the web application around ``club``.

    With ``manage_lifecycle`` the club is started and stopped together with the
    application; tests pass ``False`` to drive it themselves.
    """

    app = web.Application(client_max_size=core.MAX_WS_MESSAGE_MB * 1024 * 1024)
    app[CLUB_KEY] = club or FriendClub()
    app.add_routes(routes)

    if manage_lifecycle:
        async def _on_startup(app: web.Application) -> None:
            await app[CLUB_KEY].start()

        async def _on_cleanup(app: web.Application) -> None:
            await app[CLUB_KEY].stop()

        app.on_startup.append(_on_startup)
        app.on_cleanup.append(_on_cleanup)
    return app


def run() -> None:
    """Start the server using configuration from the environment."""

    logger.info("%s is running at http://%s:%s", core.APP_NAME, core.HOST, core.PORT)
    logger.info("BASE_URL: %s", core.BASE_URL)
    try:
        web.run_app(create_app(), host=core.HOST, port=core.PORT, print=None)
    except OSError as exc:
        logger.error("Could not bind %s:%s: %s", core.HOST, core.PORT, exc)
