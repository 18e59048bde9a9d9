"""Routers package."""

from . import (
    health,
    public,
    credits,
    diagnosis,
    billing,
)
