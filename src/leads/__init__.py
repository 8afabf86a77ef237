"""
Leads Module
============

Bounded Context for finding and reaching contractors who are not on the
platform yet.

Responsibilities:
- Stage licensed contractors from state license boards
- Find and verify their email addresses
- Push verified leads into cold campaigns
- Send reviewed replies to inbound email
"""

__version__ = "1.0.0"
