"""
SLA Interfaces Layer
====================

Interface adapters (controllers) for the SLA module.

Contains:
- Controllers: FastAPI route handlers and the job SLA WebSocket

This is the outermost layer - handles HTTP requests/responses and
delegates to application services.
"""

from src.sla.interfaces.controllers import sla_router

__all__ = ["sla_router"]
