"""
Dispatch Module
===============

Bounded Context for work orders and getting them to technicians.

Responsibilities:
- Create jobs and move them through their lifecycle
- Parse raw work order text and geocode the site address
- Match technicians by trade, state and distance
- Invite candidates: warm technicians by email, cold ones through campaigns
"""

__version__ = "1.0.0"
