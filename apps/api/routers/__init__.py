"""Routers package."""

from . import (
    health,
    connections,
    social_stats,
)
