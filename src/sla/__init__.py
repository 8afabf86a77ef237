"""
SLA Monitoring Module
=====================

Bounded Context for per-stage service level tracking of jobs.

Responsibilities:
- Resolve stage budgets from the trade/urgency preset table
- Start, complete and breach stage timers
- Raise warning and breach alerts from the background monitor
- Project timers to display states for the dashboard
- Push committed timer/alert changes to WebSocket subscribers
- Hot-reload the preset table via watchdog
"""

__version__ = "1.0.0"
