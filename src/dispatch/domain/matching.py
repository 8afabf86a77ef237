"""
Technician Matching
===================

Pure candidate selection for a job: same trade, same state, within a
radius of the job site. Distances use the haversine formula on a
spherical earth.
"""

import math
from typing import Iterable, List, Optional

from src.dispatch.domain.entities import Candidate, Technician

EARTH_RADIUS_M = 6_371_000

# Radii used when matching from the parse flow and from job creation
PARSE_MATCH_RADIUS_M = 10_000
CREATE_MATCH_RADIUS_M = 40_000


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(a))


def _same(a: Optional[str], b: Optional[str]) -> bool:
    return (a or "").strip().lower() == (b or "").strip().lower()


def match_technicians(
    technicians: Iterable[Technician],
    lat: float,
    lng: float,
    trade: Optional[str],
    state: Optional[str],
    max_distance_m: float
) -> List[Candidate]:
    """
    Technicians eligible for a job, nearest first.

    Trade and state filters apply only when the job has a value for them.
    Technicians without coordinates are never matched.
    """
    matched = []
    for tech in technicians:
        if trade and not _same(tech.trade, trade):
            continue
        if state and not _same(tech.state, state):
            continue
        if tech.lat is None or tech.lng is None:
            continue
        distance = haversine_m(lat, lng, tech.lat, tech.lng)
        if distance <= max_distance_m:
            matched.append(Candidate(technician=tech, distance_m=round(distance, 1)))

    return sorted(matched, key=lambda c: c.distance_m)
