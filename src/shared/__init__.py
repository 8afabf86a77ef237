"""
Shared Kernel Module
====================

This module contains shared infrastructure used across all bounded contexts
(SLA, Dispatch and Leads).

Architecture Pattern: Modular Monolith
- Each module (sla, dispatch, leads) is a bounded context
- Shared kernel contains only generic infrastructure
- Domain models live within each module

DO NOT add business logic from SLA, Dispatch or Leads to the shared kernel.
"""

__version__ = "1.0.0"
