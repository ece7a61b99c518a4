"""Web control panel."""

from twitch_sidekick.panel.server import create_app

__all__ = ["create_app"]
