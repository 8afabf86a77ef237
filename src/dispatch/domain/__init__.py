"""
Dispatch Domain Layer
======================

Pure business logic of work orders: the job lifecycle, technician
matching, work order text parsing and outreach payloads.

No framework or database dependencies.
"""

from src.dispatch.domain.entities import Candidate, Job, Technician
from src.dispatch.domain.matching import (
    CREATE_MATCH_RADIUS_M,
    PARSE_MATCH_RADIUS_M,
    haversine_m,
    match_technicians,
)
from src.dispatch.domain.outreach import (
    DispatchSummary,
    SendOutcome,
    accept_url,
    cold_lead_variables,
    format_short_date,
    partition_candidates,
    warm_template_data,
)
from src.dispatch.domain.parsing import (
    PARSED_FIELDS,
    heuristic_parse,
    parse_timestamp,
    to_number,
)

__all__ = [
    # Entities
    "Job",
    "Technician",
    "Candidate",
    # Matching
    "haversine_m",
    "match_technicians",
    "PARSE_MATCH_RADIUS_M",
    "CREATE_MATCH_RADIUS_M",
    # Outreach
    "SendOutcome",
    "DispatchSummary",
    "partition_candidates",
    "warm_template_data",
    "cold_lead_variables",
    "accept_url",
    "format_short_date",
    # Parsing
    "PARSED_FIELDS",
    "heuristic_parse",
    "parse_timestamp",
    "to_number",
]
