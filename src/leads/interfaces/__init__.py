"""
Leads Interfaces Layer
=======================

HTTP routes for the lead pipeline.
"""

from src.leads.interfaces.controllers import leads_router

__all__ = ["leads_router"]
