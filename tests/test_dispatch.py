"""
Tests for jobs, technician matching, work order parsing and dispatch.
"""

from datetime import datetime, timezone
from urllib.parse import urlsplit

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from src.config import DispatchMethod, JobStatus, OutreachStatus, SLAStatus, Trade, Urgency
from src.core import ExternalServiceException, RepositoryException
from src.dispatch.domain import (
    Candidate,
    Technician,
    haversine_m,
    heuristic_parse,
    match_technicians,
    parse_timestamp,
    partition_candidates,
    to_number,
)
from src.dispatch.infrastructure import SQLAlchemyOutreachRepository
from src.dispatch.infrastructure.models import WorkOrderOutreachModel, WorkOrderRecipientModel
from src.infrastructure.container import Container
from src.infrastructure.database import get_session_context
from src.infrastructure.providers import MockEmailSender
from src.infrastructure.seed import DEMO_JOB_ID
from src.main import create_app

AUSTIN = (30.2672, -97.7431)


def _tech(tech_id, trade="HVAC", state="TX", lat=30.27, lng=-97.74, signed_up=None, email="t@example.com"):
    return Technician(
        id=tech_id, full_name="Pat Doe", email=email, trade=trade,
        state=state, lat=lat, lng=lng, signed_up=signed_up,
    )


def _outreach_state(client, outreach_id):
    """Outreach row and its recipients, read on the app's event loop."""
    async def load():
        async with get_session_context() as session:
            outreach = await session.get(WorkOrderOutreachModel, outreach_id)
            result = await session.execute(
                select(WorkOrderRecipientModel)
                .where(WorkOrderRecipientModel.outreach_id == outreach_id)
                .order_by(WorkOrderRecipientModel.created_at)
            )
            recipients = {
                r.technician_id: {
                    "method": r.dispatch_method,
                    "email_sent": r.email_sent,
                    "email_opened": r.email_opened,
                    "email_opened_at": r.email_opened_at,
                }
                for r in result.scalars().all()
            }
            return {
                "status": outreach.status,
                "warm_sent": outreach.warm_sent,
                "cold_sent": outreach.cold_sent,
                "emails_sent": outreach.emails_sent,
                "warm_opened": outreach.warm_opened,
                "cold_opened": outreach.cold_opened,
                "emails_opened": outreach.emails_opened,
                "completed_at": outreach.completed_at,
            }, recipients

    return client.portal.call(load)


# ========== Matching ==========

class TestMatching:

    def test_haversine_austin_to_round_rock(self):
        distance = haversine_m(*AUSTIN, 30.5083, -97.6789)
        assert 25_000 < distance < 30_000

    def test_filters_trade_state_radius_and_coordinates(self):
        technicians = [
            _tech("far", lat=31.5, lng=-97.1),
            _tech("near"),
            _tech("plumber", trade="Plumbing"),
            _tech("other-state", state="OK"),
            _tech("no-coords", lat=None, lng=None),
            _tech("mid", lat=30.35, lng=-97.74),
        ]
        matched = match_technicians(technicians, *AUSTIN, "hvac", "tx", 40_000)
        assert [c.technician.id for c in matched] == ["near", "mid"]

    def test_missing_trade_matches_any_trade(self):
        matched = match_technicians([_tech("plumber", trade="Plumbing")], *AUSTIN, None, "TX", 40_000)
        assert len(matched) == 1

    def test_partition_skips_technicians_without_email(self):
        candidates = [
            Candidate(_tech("warm", signed_up=True)),
            Candidate(_tech("cold", signed_up=False)),
            Candidate(_tech("unknown", signed_up=None)),
            Candidate(_tech("no-email", signed_up=True, email=None)),
        ]
        warm, cold = partition_candidates(candidates)
        assert [t.id for t in warm] == ["warm"]
        assert [t.id for t in cold] == ["cold", "unknown"]


# ========== Parsing ==========

class TestHeuristicParse:

    TEXT = (
        "Plumbing leak under sink today at 1200 Barton Springs Rd, Austin, TX 78704. "
        "Budget $250-$400. Call (512) 555-0199 or email ops@acme.com"
    )

    def test_extracts_fields(self):
        parsed = heuristic_parse(self.TEXT, now=datetime(2024, 3, 1, 15, 0))
        assert parsed["trade_needed"] == Trade.PLUMBING
        assert parsed["urgency"] == Urgency.SAME_DAY
        assert parsed["address_text"] == "1200 Barton Springs Rd, Austin, TX 78704"
        assert parsed["contact_phone"] == "(512) 555-0199"
        assert parsed["contact_email"] == "ops@acme.com"
        assert parsed["budget_min"] == 250
        assert parsed["budget_max"] == 400
        assert parsed["scheduled_start_ts"] == "2024-03-02T09:00"
        assert parsed["description"] == self.TEXT

    def test_explicit_date_and_time(self):
        parsed = heuristic_parse("AC down, come 3/14/2024 at 2:30 pm, emergency")
        assert parsed["scheduled_start_ts"] == "2024-03-14T14:30"
        assert parsed["urgency"] == Urgency.EMERGENCY
        assert parsed["trade_needed"] == Trade.HVAC

    def test_short_ac_request(self):
        parsed = heuristic_parse(
            "AC repair needed at 123 Main St, Austin, TX tomorrow morning",
            now=datetime(2024, 3, 1, 15, 0)
        )
        assert parsed["trade_needed"] == Trade.HVAC
        assert parsed["address_text"] == "123 Main St, Austin, TX"
        assert parsed["urgency"] == Urgency.NEXT_DAY
        assert parsed["scheduled_start_ts"] == "2024-03-02T09:00"
        assert parsed["contact_phone"] == ""
        assert parsed["budget_max"] == 0

    def test_duration(self):
        assert heuristic_parse("Electrical panel swap, 2-3 hours")["duration"] == "2-3 hours"
        assert heuristic_parse("Handyman, about 4 hrs")["duration"] == "4 hours"

    def test_number_and_timestamp_coercion(self):
        assert to_number("$1,200") == 1200
        assert to_number("n/a") == 0
        assert to_number(None) == 0
        assert parse_timestamp("2024-01-15T10:00:00Z") == datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
        assert parse_timestamp("not a date") is None


# ========== Jobs API ==========

class TestJobsApi:

    def test_create_job_matches_nearby_technicians(self, client):
        response = client.post("/jobs", json={
            "job_title": "Walk-in cooler warm",
            "trade_needed": "HVAC",
            "urgency": "emergency",
            "state": "TX",
            "lat": AUSTIN[0],
            "lng": AUSTIN[1],
            "sla_config": {"dispatch": 20},
        })
        assert response.status_code == 201
        body = response.json()
        assert body["job"]["job_status"] == JobStatus.MATCHING
        assert body["job"]["sla_config"]["dispatch"] == 20
        assert body["job"]["sla_config"]["assignment"] == 30
        assert [c["technician_id"] for c in body["candidates"]] == ["tech-warm-1", "tech-cold-1"]

        timers = client.get(f"/sla/jobs/{body['job']['id']}/timers").json()
        assert timers["timers"][0]["target_minutes"] == 20

    def test_unknown_job_is_404(self, client):
        response = client.get("/jobs/nope")
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Job with id 'nope' not found"}

    def test_lifecycle_completes_every_stage(self, client):
        client.post(f"/jobs/{DEMO_JOB_ID}/dispatch")

        assigned = client.post(f"/jobs/{DEMO_JOB_ID}/assign", json={"technician_id": "tech-warm-1"})
        assert assigned.json()["job"]["job_status"] == JobStatus.ASSIGNED
        assert assigned.json()["job"]["assigned_tech_id"] == "tech-warm-1"

        arrived = client.post(f"/jobs/{DEMO_JOB_ID}/arrive")
        assert arrived.json()["job"]["arrived_at"] is not None

        completed = client.post(f"/jobs/{DEMO_JOB_ID}/complete")
        assert completed.json()["job"]["job_status"] == JobStatus.COMPLETED

        snapshot = client.get(f"/sla/jobs/{DEMO_JOB_ID}/timers").json()
        assert [t["stage"] for t in snapshot["timers"]] == ["dispatch", "assignment", "arrival", "completion"]
        assert snapshot["overall_status"] == SLAStatus.COMPLETED

        again = client.post(f"/jobs/{DEMO_JOB_ID}/complete")
        assert again.status_code == 400

    def test_lifecycle_without_dispatch_still_completes(self, client):
        job_id = client.post("/jobs", json={"trade_needed": "HVAC", "urgency": "emergency"}).json()["job"]["id"]

        client.post(f"/jobs/{job_id}/assign", json={"technician_id": "tech-warm-1"})
        snapshot = client.get(f"/sla/jobs/{job_id}/timers").json()
        assert snapshot["active_stage"] == "arrival"

        client.post(f"/jobs/{job_id}/arrive")
        client.post(f"/jobs/{job_id}/complete")

        snapshot = client.get(f"/sla/jobs/{job_id}/timers").json()
        assert [t["stage"] for t in snapshot["timers"]] == ["dispatch", "arrival", "completion"]
        assert all(t["completed_at"] is not None for t in snapshot["timers"])
        assert snapshot["active_stage"] is None
        assert snapshot["overall_status"] == SLAStatus.COMPLETED

    def test_assign_unknown_technician(self, client):
        response = client.post(f"/jobs/{DEMO_JOB_ID}/assign", json={"technician_id": "ghost"})
        assert response.status_code == 404

    def test_arrive_before_assignment_rejected(self, client):
        response = client.post(f"/jobs/{DEMO_JOB_ID}/arrive")
        assert response.status_code == 400
        assert "matching" in response.json()["error"]


# ========== Parse API ==========

class TestParseApi:

    RAW = "Emergency AC repair at 500 Congress Ave, Austin, TX 78701. Call (512) 555-0142"

    def test_parse_updates_seeded_job(self, client):
        response = client.post(f"/jobs/{DEMO_JOB_ID}/parse", json={"raw_text": self.RAW})
        assert response.status_code == 200
        body = response.json()
        assert body["mock"] is True
        assert body["message"] == "Job updated with parsed data"
        assert body["parsed_data"]["trade_needed"] == Trade.HVAC
        assert body["parsed_data"]["urgency"] == Urgency.EMERGENCY
        assert body["geo_data"] == {"lat": 30.2672, "lng": -97.7431, "city": "Austin", "state": "TX"}

        job = client.get(f"/jobs/{DEMO_JOB_ID}").json()
        assert job["city"] == "Austin"
        assert job["contact_phone"] == "(512) 555-0142"
        assert job["job_status"] == JobStatus.MATCHING

    def test_unknown_job_gets_synthetic_response(self, client):
        body = client.post("/jobs/mock-job-7/parse", json={"raw_text": self.RAW}).json()
        assert body["mock"] is True
        assert body["job_id"] == "mock-job-7"
        assert body["message"] == "Mock job parsed successfully"

    def test_parse_short_ac_request(self, client):
        raw = "AC repair needed at 123 Main St, Austin, TX tomorrow morning"
        body = client.post(f"/jobs/{DEMO_JOB_ID}/parse", json={"raw_text": raw}).json()
        assert body["parsed_data"]["trade_needed"] == Trade.HVAC
        assert body["parsed_data"]["address_text"] == "123 Main St, Austin, TX"
        assert body["parsed_data"]["urgency"] == Urgency.NEXT_DAY

        job = client.get(f"/jobs/{DEMO_JOB_ID}").json()
        assert job["address_text"] == "123 Main St, Austin, TX"
        assert job["trade_needed"] == Trade.HVAC

    def test_raw_text_required(self, client):
        response = client.post(f"/jobs/{DEMO_JOB_ID}/parse", json={"raw_text": "  "})
        assert response.status_code == 400
        assert response.json()["error"] == "raw_text is required"


# ========== Dispatch API ==========

class TestDispatchApi:

    def test_dispatch_sends_warm_and_cold(self, client, container):
        response = client.post(f"/jobs/{DEMO_JOB_ID}/dispatch")
        assert response.status_code == 200
        body = response.json()
        assert body["total_recipients"] == 2
        assert body["warm_sent"] == 1
        assert body["cold_sent"] == 1
        assert body["total_sent"] == 2

        warm = container.email_sender.sent[0]
        assert warm["to"] == "maria@gonzalezhvac.com"
        assert warm["template_data"]["tech_name"] == "Maria"
        assert warm["template_data"]["accept_url"].endswith(f"/jobs/{DEMO_JOB_ID}/accept?tech=tech-warm-1")

        cold = container.campaign_client.leads[0]
        assert cold["campaign_id"] == "camp-hvac"
        assert cold["email"] == "derek@olsenair.com"
        assert cold["variables"]["tracking_id"] == f"{body['outreach_id']}/tech-cold-1"

        job = client.get(f"/jobs/{DEMO_JOB_ID}").json()
        assert job["job_status"] == JobStatus.DISPATCHED
        timers = client.get(f"/sla/jobs/{DEMO_JOB_ID}/timers").json()
        assert timers["active_stage"] == "assignment"

        outreach, recipients = _outreach_state(client, body["outreach_id"])
        assert outreach["status"] == OutreachStatus.COMPLETED
        assert outreach["completed_at"] is not None
        assert (outreach["warm_sent"], outreach["cold_sent"], outreach["emails_sent"]) == (1, 1, 2)
        assert recipients == {
            "tech-warm-1": {
                "method": DispatchMethod.SENDGRID_WARM,
                "email_sent": True,
                "email_opened": False,
                "email_opened_at": None,
            },
            "tech-cold-1": {
                "method": DispatchMethod.INSTANTLY_COLD,
                "email_sent": True,
                "email_opened": False,
                "email_opened_at": None,
            },
        }

    def test_dispatch_without_candidates_sends_nothing(self, client):
        job_id = client.post("/jobs", json={"trade_needed": "HVAC", "urgency": "same_day"}).json()["job"]["id"]

        body = client.post(f"/jobs/{job_id}/dispatch").json()
        assert body["total_recipients"] == 0
        assert body["total_sent"] == 0
        assert client.get(f"/jobs/{job_id}").json()["job_status"] == JobStatus.MATCHING

        outreach, recipients = _outreach_state(client, body["outreach_id"])
        assert outreach["status"] == OutreachStatus.FAILED
        assert outreach["emails_sent"] == 0
        assert recipients == {}

    def test_legacy_endpoint(self, client):
        assert client.post("/dispatch/work-order", json={}).status_code == 400
        assert client.post("/dispatch/work-order", json={"job_id": "nope"}).status_code == 404
        body = client.post("/dispatch/work-order", json={"job_id": DEMO_JOB_ID}).json()
        assert body["total_sent"] == 2

    def test_tracking_pixel_marks_first_open_only(self, client, container):
        outreach_id = client.post(f"/jobs/{DEMO_JOB_ID}/dispatch").json()["outreach_id"]
        pixel_url = urlsplit(container.email_sender.sent[0]["template_data"]["tracking_pixel"])
        assert pixel_url.path.endswith("/track-email-open")

        for _ in range(2):
            response = client.get(f"/track-email-open?{pixel_url.query}")
            assert response.status_code == 200
            assert response.headers["content-type"] == "image/gif"
            assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"
            assert response.content.startswith(b"GIF89a")

        # Older links carry a single outreach/tech id
        client.get("/track-email-open", params={"id": f"{outreach_id}/tech-cold-1"})

        outreach, recipients = _outreach_state(client, outreach_id)
        assert (outreach["warm_opened"], outreach["cold_opened"], outreach["emails_opened"]) == (1, 1, 2)
        assert recipients["tech-warm-1"]["email_opened"] is True
        assert recipients["tech-warm-1"]["email_opened_at"] is not None
        assert recipients["tech-cold-1"]["email_opened"] is True

    def test_tracking_pixel_served_for_unknown_recipient(self, client):
        for params in ({"outreach": "nope", "tech": "ghost"}, {}):
            response = client.get("/track-email-open", params=params)
            assert response.status_code == 200
            assert response.headers["content-type"] == "image/gif"


class FailingEmailSender(MockEmailSender):

    async def send_template(self, to_email, template_data, template_id=None):
        raise ExternalServiceException("SendGrid", "API error: 500")


@pytest.fixture()
def failing_warm_client(app_settings):
    container = Container(app_settings, email_sender=FailingEmailSender())
    with TestClient(create_app(container)) as test_client:
        yield test_client


def test_failed_send_does_not_fail_dispatch(failing_warm_client):
    response = failing_warm_client.post(f"/jobs/{DEMO_JOB_ID}/dispatch")
    assert response.status_code == 200
    body = response.json()
    assert body["warm_sent"] == 0
    assert body["cold_sent"] == 1
    assert body["total_recipients"] == 2


def test_recording_failure_does_not_fail_dispatch(client, monkeypatch):
    async def broken_mark_sent(self, recipient_id, now):
        raise RepositoryException("database is locked")

    monkeypatch.setattr(SQLAlchemyOutreachRepository, "mark_sent", broken_mark_sent)

    response = client.post(f"/jobs/{DEMO_JOB_ID}/dispatch")
    assert response.status_code == 200
    body = response.json()
    assert body["warm_sent"] == 1
    assert body["cold_sent"] == 1
    assert body["total_sent"] == 2
    assert client.get(f"/jobs/{DEMO_JOB_ID}").json()["job_status"] == JobStatus.DISPATCHED
