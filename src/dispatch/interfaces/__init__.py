"""
Dispatch Interfaces Layer
==========================

Interface adapters (controllers) for the dispatch module.

This is the outermost layer - handles HTTP requests/responses and
delegates to application services.
"""

from src.dispatch.interfaces.controllers import dispatch_router

__all__ = ["dispatch_router"]
