"""
Provider Clients
================

HTTP clients for the third-party services the dispatch service talks to:
Hunter.io, SendGrid, Instantly and the geocoders. Every client has an
interface and a mock so mock mode and tests never leave the process.
"""

from src.infrastructure.providers.base import HTTPProviderClient
from src.infrastructure.providers.geocoding import (
    GeoResult,
    GeocoderChain,
    GoogleGeocoder,
    IGeocoder,
    MapboxGeocoder,
    MockGeocoder,
    NominatimGeocoder,
    build_geocoder,
)
from src.infrastructure.providers.hunter import (
    EmailFinderResult,
    EmailVerification,
    HunterAccount,
    HunterClient,
    HunterEmail,
    IHunterClient,
    MockHunterClient,
    company_domain_guess,
    extract_domain,
)
from src.infrastructure.providers.instantly import (
    ICampaignClient,
    InstantlyClient,
    MockCampaignClient,
)
from src.infrastructure.providers.sendgrid import (
    IEmailSender,
    MockEmailSender,
    SendGridClient,
    SendResult,
)

__all__ = [
    "HTTPProviderClient",
    # Geocoding
    "GeoResult",
    "GeocoderChain",
    "GoogleGeocoder",
    "IGeocoder",
    "MapboxGeocoder",
    "MockGeocoder",
    "NominatimGeocoder",
    "build_geocoder",
    # Hunter
    "EmailFinderResult",
    "EmailVerification",
    "HunterAccount",
    "HunterClient",
    "HunterEmail",
    "IHunterClient",
    "MockHunterClient",
    "company_domain_guess",
    "extract_domain",
    # Instantly
    "ICampaignClient",
    "InstantlyClient",
    "MockCampaignClient",
    # SendGrid
    "IEmailSender",
    "MockEmailSender",
    "SendGridClient",
    "SendResult",
]
