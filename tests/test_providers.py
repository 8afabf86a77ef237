"""
Tests for the third-party clients, driven through ``httpx.MockTransport``.
"""

import asyncio
import json

import httpx
import pytest
from openai import AsyncOpenAI

from src.core import ConfigurationException, ExternalServiceException
from src.infrastructure.llm import OpenAIWorkOrderParser
from src.infrastructure.providers import (
    GeocoderChain,
    GoogleGeocoder,
    HunterClient,
    InstantlyClient,
    MapboxGeocoder,
    NominatimGeocoder,
    SendGridClient,
    company_domain_guess,
    extract_domain,
)


def _http(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class Recorder:
    """Transport handler that remembers requests and replies with a fixed response."""

    def __init__(self, status_code=200, payload=None, headers=None):
        self.status_code = status_code
        self.payload = payload if payload is not None else {}
        self.headers = headers or {}
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.payload, headers=self.headers)

    @property
    def last_json(self):
        return json.loads(self.requests[-1].content)


# ========== Domain helpers ==========

def test_extract_domain():
    assert extract_domain("https://www.acmeheating.com/contact") == "acmeheating.com"
    assert extract_domain("acmeheating.com") == "acmeheating.com"
    assert extract_domain("http://shop.acme.io") == "shop.acme.io"
    assert extract_domain("   ") is None
    assert extract_domain(None) is None


def test_company_domain_guess():
    assert company_domain_guess("Acme Heating & Air, LLC") == "acmeheatingairllc.com"
    assert company_domain_guess("!!!") is None
    assert company_domain_guess(None) is None


# ========== Hunter.io ==========

class TestHunterClient:

    def test_domain_search(self):
        recorder = Recorder(payload={"data": {"emails": [
            {"value": "ray@lonestar.com", "confidence": 92, "first_name": "Ray", "last_name": "Huang"},
            {"value": None, "confidence": 10},
            {"value": "info@lonestar.com"},
        ]}})
        client = HunterClient("key-1", http_client=_http(recorder))

        emails = asyncio.run(client.domain_search("lonestar.com"))

        assert [(e.value, e.confidence) for e in emails] == [("ray@lonestar.com", 92), ("info@lonestar.com", 0)]
        params = recorder.requests[0].url.params
        assert recorder.requests[0].url.path == "/v2/domain-search"
        assert params["domain"] == "lonestar.com"
        assert params["api_key"] == "key-1"

    def test_email_finder_prefers_domain(self):
        recorder = Recorder(payload={"data": {"email": "dana@sierraair.com", "score": 88, "linkedin": "li/dana"}})
        client = HunterClient("key-1", http_client=_http(recorder))

        result = asyncio.run(client.email_finder("Dana", "Ortiz", company="Sierra Air", domain="sierraair.com"))

        assert result.email == "dana@sierraair.com"
        assert result.score == 88
        assert result.linkedin_url == "li/dana"
        params = recorder.requests[0].url.params
        assert params["domain"] == "sierraair.com"
        assert "company" not in params

    def test_email_finder_nothing_found(self):
        client = HunterClient("key-1", http_client=_http(Recorder(payload={"data": {"email": None}})))
        assert asyncio.run(client.email_finder("Dana", company="Sierra Air")) is None

    def test_account_info(self):
        recorder = Recorder(payload={"data": {"requests": {
            "searches": {"used": 12, "available": 38},
            "verifications": {"used": 3, "available": 97},
        }}})
        account = asyncio.run(HunterClient("key-1", http_client=_http(recorder)).account_info())
        assert account.searches_available == 38
        assert account.verifications_used == 3

    @pytest.mark.parametrize("status_code,message", [
        (401, "Hunter.io: Invalid Hunter.io API key"),
        (429, "Hunter.io: Hunter.io rate limit exceeded"),
        (500, "Hunter.io: API error: 500"),
    ])
    def test_error_statuses(self, status_code, message):
        client = HunterClient("key-1", http_client=_http(Recorder(status_code=status_code)))
        with pytest.raises(ExternalServiceException) as exc_info:
            asyncio.run(client.verify_email("a@b.com"))
        assert exc_info.value.message == message

    def test_missing_key(self):
        recorder = Recorder()
        client = HunterClient("", http_client=_http(recorder))
        assert client.configured is False
        with pytest.raises(ConfigurationException):
            asyncio.run(client.domain_search("lonestar.com"))
        assert recorder.requests == []

    def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = HunterClient("key-1", http_client=_http(handler))
        with pytest.raises(ExternalServiceException) as exc_info:
            asyncio.run(client.verify_email("a@b.com"))
        assert exc_info.value.service_name == "Hunter.io"


# ========== SendGrid ==========

class TestSendGridClient:

    def test_template_send(self):
        recorder = Recorder(status_code=202, headers={"X-Message-Id": "msg-123"})
        client = SendGridClient("sg-key", "tmpl-1", http_client=_http(recorder))

        result = asyncio.run(client.send_template("maria@gonzalezhvac.com", {"job_title": "AC down"}))

        assert result.status_code == 202
        assert result.message_id == "msg-123"
        request = recorder.requests[0]
        assert request.headers["Authorization"] == "Bearer sg-key"
        payload = recorder.last_json
        assert payload["template_id"] == "tmpl-1"
        assert payload["personalizations"][0]["to"] == [{"email": "maria@gonzalezhvac.com"}]
        assert payload["personalizations"][0]["dynamic_template_data"] == {"job_title": "AC down"}

    def test_plain_send_tracks_opens_and_clicks(self):
        recorder = Recorder(status_code=202)
        client = SendGridClient("sg-key", "", http_client=_http(recorder))

        asyncio.run(client.send_plain("dana@sierraairmech.com", "Re: jobs", "Hi Dana", reply_to="ops@example.com"))

        payload = recorder.last_json
        assert payload["subject"] == "Re: jobs"
        assert payload["content"] == [{"type": "text/plain", "value": "Hi Dana"}]
        assert payload["reply_to"] == {"email": "ops@example.com"}
        assert payload["tracking_settings"]["open_tracking"]["enable"] is True
        assert client.template_configured is False

    def test_template_required(self):
        client = SendGridClient("sg-key", "", http_client=_http(Recorder()))
        with pytest.raises(ConfigurationException):
            asyncio.run(client.send_template("a@b.com", {}))

    def test_rejected_send(self):
        client = SendGridClient("sg-key", "tmpl-1", http_client=_http(Recorder(status_code=400)))
        with pytest.raises(ExternalServiceException) as exc_info:
            asyncio.run(client.send_template("a@b.com", {}))
        assert exc_info.value.details["status_code"] == 400


# ========== Instantly ==========

class TestInstantlyClient:

    def test_v1_puts_key_in_body(self):
        recorder = Recorder(payload={"status": "success"})
        client = InstantlyClient("inst-key", http_client=_http(recorder))

        result = asyncio.run(client.add_lead_v1(
            "camp-hvac", "derek@olsenair.com", "Derek", "Olsen", "Olsen Air",
            variables={"job_title": "AC down"}
        ))

        assert result == {"status": "success"}
        payload = recorder.last_json
        assert payload["api_key"] == "inst-key"
        assert payload["campaign_id"] == "camp-hvac"
        assert payload["variables"] == {"job_title": "AC down"}

    def test_v2_uses_bearer_auth(self):
        recorder = Recorder(payload={"id": "lead-9"})
        client = InstantlyClient("inst-key", http_client=_http(recorder))

        asyncio.run(client.add_lead_v2("camp-plumbing", {"email": "ray@lonestar.com", "first_name": "Ray"}))

        assert recorder.requests[0].headers["Authorization"] == "Bearer inst-key"
        assert recorder.last_json == {"campaign": "camp-plumbing", "email": "ray@lonestar.com", "first_name": "Ray"}

    def test_missing_key(self):
        client = InstantlyClient("", http_client=_http(Recorder()))
        with pytest.raises(ConfigurationException):
            asyncio.run(client.add_lead_v2("camp", {}))


# ========== Geocoding ==========

class TestGeocoders:

    def test_nominatim_reads_state_from_iso_region(self):
        recorder = Recorder(payload=[{
            "lat": "30.2672",
            "lon": "-97.7431",
            "display_name": "Congress Avenue, Austin, Texas",
            "address": {"city": "Austin", "ISO3166-2-lvl4": "US-TX"},
        }])
        geocoder = NominatimGeocoder("raven-tests", http_client=_http(recorder))

        result = asyncio.run(geocoder.geocode("500 Congress Ave, Austin, TX"))

        assert (result.lat, result.lng) == (30.2672, -97.7431)
        assert result.city == "Austin"
        assert result.state == "TX"
        assert recorder.requests[0].headers["User-Agent"] == "raven-tests"
        assert recorder.requests[0].url.params["countrycodes"] == "us"

    def test_nominatim_no_hit(self):
        geocoder = NominatimGeocoder("raven-tests", http_client=_http(Recorder(payload=[])))
        assert asyncio.run(geocoder.geocode("nowhere")) is None

    def test_google_components(self):
        recorder = Recorder(payload={"status": "OK", "results": [{
            "formatted_address": "500 Congress Ave, Austin, TX 78701, USA",
            "geometry": {"location": {"lat": 30.268, "lng": -97.742}},
            "address_components": [
                {"long_name": "Austin", "short_name": "Austin", "types": ["locality", "political"]},
                {"long_name": "Texas", "short_name": "TX", "types": ["administrative_area_level_1"]},
            ],
        }]})
        result = asyncio.run(GoogleGeocoder("g-key", http_client=_http(recorder)).geocode("500 Congress"))
        assert (result.city, result.state, result.provider) == ("Austin", "TX", "google")

    def test_mapbox_context(self):
        recorder = Recorder(payload={"features": [{
            "center": [-97.742, 30.268],
            "place_name": "500 Congress Ave, Austin, Texas 78701",
            "context": [
                {"id": "place.123", "text": "Austin"},
                {"id": "region.456", "text": "Texas", "short_code": "US-TX"},
            ],
        }]})
        result = asyncio.run(MapboxGeocoder("mb-token", http_client=_http(recorder)).geocode("500 Congress"))
        assert (result.lat, result.lng) == (30.268, -97.742)
        assert result.state == "TX"
        assert "/mapbox.places/500%20Congress.json" in str(recorder.requests[0].url)

    def test_unconfigured_geocoders_skip(self):
        recorder = Recorder()
        assert asyncio.run(GoogleGeocoder("", http_client=_http(recorder)).geocode("x")) is None
        assert asyncio.run(MapboxGeocoder("", http_client=_http(recorder)).geocode("x")) is None
        assert recorder.requests == []

    def test_chain_falls_through_errors(self):
        failing = NominatimGeocoder("raven-tests", http_client=_http(Recorder(status_code=503)))
        google = GoogleGeocoder("g-key", http_client=_http(Recorder(payload={"status": "OK", "results": [{
            "geometry": {"location": {"lat": 30.1, "lng": -97.1}},
        }]})))
        result = asyncio.run(GeocoderChain([failing, google]).geocode("somewhere"))
        assert result.provider == "google"
        assert result.formatted_address == "somewhere"

    def test_chain_miss(self):
        chain = GeocoderChain([NominatimGeocoder("raven-tests", http_client=_http(Recorder(payload=[])))])
        assert asyncio.run(chain.geocode("nowhere")) is None


# ========== OpenAI parser ==========

def _completion(content):
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "gpt-4o-mini",
        "choices": [{
            "index": 0,
            "message": {"role": "assistant", "content": content},
            "finish_reason": "stop",
        }],
    }


def _openai(recorder):
    return AsyncOpenAI(api_key="sk-test", max_retries=0, http_client=_http(recorder))


class TestOpenAIParser:

    RAW = "Plumbing leak today at 1200 Barton Springs Rd, Austin, TX 78704"

    def test_json_completion(self):
        content = json.dumps({
            "job_title": "Leak repair",
            "trade_needed": "Plumbing",
            "description": {"symptoms_observed": "Water under sink", "likely_cause": "Loose trap"},
        })
        recorder = Recorder(payload=_completion(content))
        parser = OpenAIWorkOrderParser(model="gpt-4o-mini", client=_openai(recorder))

        result = asyncio.run(parser.parse(self.RAW))

        assert result.source == "openai"
        assert result.data["job_title"] == "Leak repair"
        assert result.data["description"].startswith("**Symptoms:** Water under sink\n**Diagnosis:** Loose trap")
        request = recorder.last_json
        assert request["response_format"] == {"type": "json_object"}
        assert self.RAW in request["messages"][1]["content"]

    def test_invalid_json_falls_back(self):
        parser = OpenAIWorkOrderParser(client=_openai(Recorder(payload=_completion("Sure! Here it is"))))
        result = asyncio.run(parser.parse(self.RAW))
        assert result.source == "heuristic"
        assert result.data["trade_needed"] == "Plumbing"

    def test_api_error_falls_back(self):
        recorder = Recorder(status_code=500, payload={"error": {"message": "boom"}})
        result = asyncio.run(OpenAIWorkOrderParser(client=_openai(recorder)).parse(self.RAW))
        assert result.source == "heuristic"
