"""
Tests for lead enrichment, license verification, outreach target
enrichment and the reply queue.

Service tests use in-memory repositories and a scripted Hunter.io client;
API tests run against the seeded mock-mode application.
"""

import asyncio
from datetime import datetime

import pytest

from src.core import (
    ConfigurationException,
    ExternalServiceException,
    ProviderRateLimitException,
    RepositoryException,
)
from src.infrastructure.providers import (
    EmailFinderResult,
    EmailVerification,
    HunterAccount,
    HunterEmail,
    IHunterClient,
    MockCampaignClient,
    MockEmailSender,
)
from src.infrastructure.seed import DEMO_REPLY_ID, DEMO_TARGET_ID
from src.leads.application import (
    EmailEnrichmentService,
    IColdLeadRepository,
    ILicenseRecordRepository,
    IOutreachTargetRepository,
    IReplyRepository,
    LeadEnrichmentService,
    LeadVerificationService,
    ReplyService,
)
from src.leads.domain import (
    ENRICHMENT_SOURCE_GUESS,
    ColdLead,
    LicenseRecord,
    OutreachTarget,
    QueuedReply,
    generate_email_guess,
    is_placeholder_email,
    pick_domain_email,
)

NOW = datetime(2024, 5, 1, 12, 0)


# ========== Fakes ==========

class ScriptedHunter(IHunterClient):
    """Answers from dictionaries; a value that is an exception gets raised."""

    def __init__(self, finder=None, domains=None, verifications=None, searches_available=100, configured=True):
        self.finder = finder or {}
        self.domains = domains or {}
        self.verifications = verifications or {}
        self.searches_available = searches_available
        self._configured = configured
        self.calls = []

    @property
    def configured(self):
        return self._configured

    @staticmethod
    def _answer(value):
        if isinstance(value, Exception):
            raise value
        return value

    async def domain_search(self, domain, limit=10):
        self.calls.append(("domain", domain))
        return self._answer(self.domains.get(domain, []))

    async def email_finder(self, first_name, last_name=None, company=None, domain=None):
        self.calls.append(("finder", first_name, last_name, company, domain))
        return self._answer(self.finder.get((first_name, last_name)))

    async def verify_email(self, email):
        self.calls.append(("verify", email))
        return self._answer(self.verifications.get(email, EmailVerification(email, "invalid")))

    async def account_info(self):
        return HunterAccount(searches_used=10, searches_available=self.searches_available)


class InMemoryColdLeads(IColdLeadRepository):

    def __init__(self, leads, fail_on=None):
        self.leads = {lead.id: lead for lead in leads}
        self.applied = {}
        self.not_found = []
        self.upserts = []
        self.dispatched = []
        self.fail_on = fail_on

    async def list_needing_enrichment(self, lead_ids, source, limit):
        leads = [lead for lead in self.leads.values() if not lead_ids or lead.id in lead_ids]
        return leads[:limit]

    async def apply_enrichment(self, lead_id, found, now):
        if lead_id == self.fail_on:
            raise RepositoryException("Failed to update lead: disk full")
        self.applied[lead_id] = found

    async def mark_not_found(self, lead_id, now):
        self.not_found.append(lead_id)

    async def enrichment_stats(self, month_start):
        return {"needsEnrichment": len(self.leads), "monthStart": month_start}

    async def upsert_by_email(self, fields, now):
        self.upserts.append(fields)

    async def mark_dispatched(self, email, now):
        self.dispatched.append(email)


class InMemoryLicenseRecords(ILicenseRecordRepository):

    def __init__(self, records):
        self.records = records
        self.stored = {}
        self.requested_limit = None

    async def existing_license_numbers(self, source, numbers):
        return set()

    async def insert_batch(self, rows):
        pass

    async def import_stats(self, source):
        return {}

    async def list_for_verification(self, ids, limit):
        self.requested_limit = limit
        return self.records[:limit]

    async def record_verification(self, record_id, email, verified, confidence, now):
        self.stored[record_id] = (email, verified, confidence)

    async def verification_stats(self):
        return {"pendingVerification": len(self.records)}


class InMemoryTargets(IOutreachTargetRepository):

    def __init__(self, target, queued_domain=None):
        self.target = target
        self.domain = queued_domain
        self.target_updates = {}
        self.queue = {}
        self.failures = []

    async def get(self, target_id):
        return self.target if self.target and self.target.id == target_id else None

    async def queued_domain(self, target_id):
        return self.domain

    async def update_target(self, target_id, **fields):
        self.target_updates.update(fields)

    async def update_queue(self, target_id, **fields):
        self.queue.update(fields)

    async def record_queue_failure(self, target_id, error, now):
        self.failures.append(error)


class InMemoryReplies(IReplyRepository):

    def __init__(self, reply):
        self.reply = reply
        self.sent = None

    async def get(self, reply_id):
        return self.reply if self.reply.id == reply_id else None

    async def mark_sent(self, reply_id, edited_body, message_id, now):
        self.sent = (edited_body, message_id)

    async def mark_rejected(self, reply_id, now):
        return reply_id == self.reply.id


class FailingEmailSender(MockEmailSender):

    async def send_plain(self, to_email, subject, body, reply_to=None):
        raise ExternalServiceException("SendGrid", "API error: 503", {"status": 503})


def _lead(lead_id="lead-1", **overrides):
    fields = dict(
        id=lead_id,
        email="88812@placeholder.cslb",
        full_name="Dana Ortiz",
        company_name="Sierra Air Mechanical",
        website="https://www.sierraairmech.com",
    )
    fields.update(overrides)
    return ColdLead(**fields)


# ========== Domain helpers ==========

class TestEnrichmentRules:

    def test_placeholder_email(self):
        assert is_placeholder_email("1045521@placeholder.cslb")
        assert is_placeholder_email("x@placeholder.dbpr")
        assert not is_placeholder_email("dana@sierraairmech.com")
        assert not is_placeholder_email(None)

    def test_email_guess_strips_company_noise(self):
        assert generate_email_guess("Dana", "Ortiz", "Ortiz Plumbing Company LLC") == "dana.ortiz@ortiz.com"
        assert generate_email_guess("Bo", "Li", "HVAC Co") is None
        assert generate_email_guess("J.R.", "O'Neil", "Acme Heating") == "jr.oneil@acmeheating.com"

    def test_pick_prefers_named_person(self):
        emails = [
            HunterEmail("info@acme.com", 95),
            HunterEmail("dana@acme.com", 60, first_name="Dana", last_name="Ortiz"),
        ]
        assert pick_domain_email(emails, "dana", "ORTIZ").value == "dana@acme.com"
        assert pick_domain_email(emails).value == "info@acme.com"
        assert pick_domain_email([]) is None


# ========== Lead enrichment ==========

class TestLeadEnrichment:

    def _run(self, service, **kwargs):
        return asyncio.run(service.enrich(now=NOW, **kwargs))

    def test_finder_hit_above_threshold_is_verified(self):
        repo = InMemoryColdLeads([_lead()])
        hunter = ScriptedHunter(finder={("Dana", "Ortiz"): EmailFinderResult(
            "dana@sierraairmech.com", score=90, linkedin_url="https://linkedin.com/in/dana"
        )})
        result = self._run(LeadEnrichmentService(repo, hunter))

        assert result["results"]["enriched"] == 1
        assert result["message"] == "Enriched 1/1 leads"
        assert result["dryRun"] is False
        found = repo.applied["lead-1"]
        assert found.verified is True
        assert found.linkedin_url == "https://linkedin.com/in/dana"
        assert [call[0] for call in hunter.calls] == ["finder"]

    def test_domain_search_prefers_named_person(self):
        repo = InMemoryColdLeads([_lead()])
        hunter = ScriptedHunter(domains={"sierraairmech.com": [
            HunterEmail("office@sierraairmech.com", 95),
            HunterEmail("dana@sierraairmech.com", 85, first_name="Dana", last_name="Ortiz"),
        ]})
        self._run(LeadEnrichmentService(repo, hunter))

        found = repo.applied["lead-1"]
        assert found.email == "dana@sierraairmech.com"
        assert found.verified is True

    def test_accept_all_guess_is_kept_unverified(self):
        repo = InMemoryColdLeads([_lead(website=None)])
        guess = "dana.ortiz@sierraairmechanical.com"
        hunter = ScriptedHunter(verifications={guess: EmailVerification(guess, "accept_all")})
        self._run(LeadEnrichmentService(repo, hunter))

        found = repo.applied["lead-1"]
        assert found.email == guess
        assert found.verified is False
        assert found.source == ENRICHMENT_SOURCE_GUESS

    def test_nothing_found_marks_attempted(self):
        repo = InMemoryColdLeads([_lead()])
        result = self._run(LeadEnrichmentService(repo, ScriptedHunter()))

        assert result["results"]["notFound"] == 1
        assert repo.not_found == ["lead-1"]

    def test_dry_run_writes_nothing(self):
        repo = InMemoryColdLeads([_lead(), _lead("lead-2", full_name="Solo")])
        hunter = ScriptedHunter(finder={("Dana", "Ortiz"): EmailFinderResult("dana@sierraairmech.com", 90)})
        result = self._run(LeadEnrichmentService(repo, hunter), dry_run=True)

        assert result["results"]["processed"] == 2
        assert result["results"]["enriched"] == 1
        assert result["dryRun"] is True
        assert repo.applied == {}
        assert repo.not_found == []

    def test_provider_error_in_a_step_is_a_miss(self):
        repo = InMemoryColdLeads([_lead()])
        hunter = ScriptedHunter(
            finder={("Dana", "Ortiz"): ExternalServiceException("Hunter.io", "Hunter.io rate limit exceeded")},
            domains={"sierraairmech.com": [HunterEmail("dana@sierraairmech.com", 70)]},
        )
        self._run(LeadEnrichmentService(repo, hunter))

        assert repo.applied["lead-1"].email == "dana@sierraairmech.com"
        assert repo.applied["lead-1"].verified is False

    def test_repository_failure_is_counted(self):
        repo = InMemoryColdLeads([_lead()], fail_on="lead-1")
        hunter = ScriptedHunter(finder={("Dana", "Ortiz"): EmailFinderResult("dana@sierraairmech.com", 90)})
        result = self._run(LeadEnrichmentService(repo, hunter))

        assert result["results"]["errors"] == 1
        assert result["results"]["errorDetails"] == ["lead-1: Failed to update lead: disk full"]

    def test_unconfigured_provider(self):
        service = LeadEnrichmentService(InMemoryColdLeads([]), ScriptedHunter(configured=False))
        with pytest.raises(ConfigurationException):
            self._run(service)

    def test_stats_report_monthly_limit(self):
        service = LeadEnrichmentService(InMemoryColdLeads([_lead()]), ScriptedHunter(), monthly_limit=250)
        stats = asyncio.run(service.stats(now=datetime(2024, 5, 17, 8, 30)))["stats"]
        assert stats["hunterMonthlyLimit"] == 250
        assert stats["monthStart"] == datetime(2024, 5, 1)


# ========== License verification ==========

class TestLicenseVerification:

    RECORDS = [
        LicenseRecord(id="r1", source="cslb", license_number="1", business_name="Sierra Air", full_name="Dana Ortiz"),
        LicenseRecord(id="r2", source="cslb", license_number="2", business_name="Valley Comfort", first_name="Ana"),
        LicenseRecord(id="r3", source="cslb", license_number="3", business_name="Nameless"),
    ]

    def test_confidence_threshold(self):
        repo = InMemoryLicenseRecords(self.RECORDS)
        hunter = ScriptedHunter(finder={
            ("Dana", "Ortiz"): EmailFinderResult("dana@sierraair.com", 85),
            ("Ana", None): EmailFinderResult("ana@valleycomfort.com", 50),
        })
        result = asyncio.run(LeadVerificationService(repo, hunter).verify(now=NOW))

        assert result["verified"] == 1
        assert result["failed"] == 2
        assert result["message"] == "Verified 1 emails, 2 failed"
        assert result["accountInfo"] == {"searchesRemaining": 97}
        assert repo.stored["r1"] == ("dana@sierraair.com", True, 85)
        assert repo.stored["r2"] == ("ana@valleycomfort.com", False, 50)
        assert result["results"][2]["error"] == "First name is required"
        assert result["results"][2]["status"] == "not_found"
        assert hunter.calls[0] == ("finder", "Dana", "Ortiz", "Sierra Air", "sierraair.com")

    def test_no_credits(self):
        service = LeadVerificationService(InMemoryLicenseRecords(self.RECORDS), ScriptedHunter(searches_available=0))
        with pytest.raises(ProviderRateLimitException) as exc_info:
            asyncio.run(service.verify(now=NOW))
        assert exc_info.value.status_code == 429

    def test_limit_capped_by_credits(self):
        repo = InMemoryLicenseRecords(self.RECORDS)
        asyncio.run(LeadVerificationService(repo, ScriptedHunter(searches_available=2)).verify(limit=10, now=NOW))
        assert repo.requested_limit == 2

    def test_nothing_to_verify(self):
        result = asyncio.run(
            LeadVerificationService(InMemoryLicenseRecords([]), ScriptedHunter()).verify(now=NOW)
        )
        assert result["message"] == "No records need verification"


# ========== Outreach target enrichment ==========

def _target(**overrides):
    fields = dict(
        id="target-1",
        business_name="Lone Star Plumbing Co",
        website="https://lonestarplumbing.com",
        phone="(512) 555-0199",
        city="Austin",
        state="TX",
        trade_type="plumbing",
    )
    fields.update(overrides)
    return OutreachTarget(**fields)


def _email_service(targets, hunter, leads=None, campaigns=None):
    return EmailEnrichmentService(
        targets,
        leads or InMemoryColdLeads([]),
        hunter,
        campaigns or MockCampaignClient(),
        campaign_by_trade={"HVAC": "camp-hvac", "Plumbing": "camp-plumbing"},
        cold_campaign_id="camp-cold",
    )


class TestEmailEnrichment:

    def test_verified_email_is_pushed_to_trade_campaign(self):
        targets = InMemoryTargets(_target())
        leads = InMemoryColdLeads([])
        campaigns = MockCampaignClient()
        hunter = ScriptedHunter(
            domains={"lonestarplumbing.com": [
                HunterEmail("info@lonestarplumbing.com", 70),
                HunterEmail("ray@lonestarplumbing.com", 92, first_name="Ray", last_name="Huang"),
            ]},
            verifications={"ray@lonestarplumbing.com": EmailVerification("ray@lonestarplumbing.com", "valid")},
        )
        result = asyncio.run(_email_service(targets, hunter, leads, campaigns).enrich("target-1", now=NOW))

        assert result == {
            "success": True,
            "target_id": "target-1",
            "email_found": True,
            "email": "ray@lonestarplumbing.com",
            "email_verified": True,
        }
        assert targets.target_updates["contact_name"] == "Ray Huang"
        assert targets.target_updates["status"] == "enriched"
        assert len(targets.queue["emails_found"]) == 2
        assert leads.upserts[0]["full_name"] == "Ray Huang"
        assert campaigns.leads[0]["campaign_id"] == "camp-plumbing"
        assert campaigns.leads[0]["skip_if_in_campaign"] is True
        assert leads.dispatched == ["ray@lonestarplumbing.com"]

    def test_unverified_email_is_not_pushed(self):
        campaigns = MockCampaignClient()
        hunter = ScriptedHunter(domains={"lonestarplumbing.com": [HunterEmail("info@lonestarplumbing.com", 70)]})
        result = asyncio.run(
            _email_service(InMemoryTargets(_target()), hunter, campaigns=campaigns).enrich("target-1", now=NOW)
        )
        assert result["email_verified"] is False
        assert campaigns.leads == []

    def test_provider_failure_marks_queue_failed(self):
        targets = InMemoryTargets(_target())
        hunter = ScriptedHunter(domains={
            "lonestarplumbing.com": ExternalServiceException("Hunter.io", "Invalid Hunter.io API key")
        })
        with pytest.raises(ExternalServiceException):
            asyncio.run(_email_service(targets, hunter).enrich("target-1", now=NOW))
        assert targets.failures == ["Hunter.io: Invalid Hunter.io API key"]

    def test_no_domain(self):
        targets = InMemoryTargets(_target(website=None))
        result = asyncio.run(_email_service(targets, ScriptedHunter()).enrich("target-1", now=NOW))
        assert result["message"] == "No domain available for email discovery"
        assert targets.target_updates["email_found"] is False

    def test_queued_domain_wins_over_website(self):
        hunter = ScriptedHunter()
        targets = InMemoryTargets(_target(), queued_domain="lonestar.example")
        asyncio.run(_email_service(targets, hunter).enrich("target-1", now=NOW))
        assert hunter.calls[0] == ("domain", "lonestar.example")

    def test_campaign_resolution(self):
        service = _email_service(InMemoryTargets(None), ScriptedHunter())
        assert service.resolve_campaign("hvac") == "camp-hvac"
        assert service.resolve_campaign("Roofing") == "camp-cold"
        assert service.resolve_campaign(None) == "camp-cold"


# ========== Reply queue ==========

class TestReplyService:

    def _reply(self, status="pending"):
        return QueuedReply(
            id="reply-1",
            original_from="dana@sierraairmech.com",
            generated_subject="Re: jobs",
            generated_body="Hi Dana",
            status=status,
        )

    def test_edited_body_is_sent(self):
        repo = InMemoryReplies(self._reply())
        sender = MockEmailSender()
        result = asyncio.run(ReplyService(repo, sender).send("reply-1", edited_body="Hello Dana", now=NOW))

        assert result["sentTo"] == "dana@sierraairmech.com"
        assert sender.sent[0]["body"] == "Hello Dana"
        assert sender.sent[0]["subject"] == "Re: jobs"
        assert repo.sent == ("Hello Dana", result["messageId"])

    def test_send_failure(self):
        repo = InMemoryReplies(self._reply())
        with pytest.raises(ExternalServiceException) as exc_info:
            asyncio.run(ReplyService(repo, FailingEmailSender()).send("reply-1", now=NOW))
        assert exc_info.value.message == "SendGrid: Failed to send email"
        assert repo.sent is None


# ========== API ==========

class TestLeadsApi:

    def test_mock_enrichment_runs_once(self, client):
        body = client.post("/leads/enrich", json={}).json()
        assert body["results"]["processed"] == 1
        assert body["results"]["enriched"] == 1
        assert body["dryRun"] is False

        again = client.post("/leads/enrich", json={"leadIds": ["cold-lead-1"]}).json()
        assert again["message"] == "No leads needing enrichment found"
        assert "dryRun" not in again

    def test_enrichment_stats(self, client):
        body = client.get("/leads/enrich").json()
        assert body["success"] is True
        assert "hunterMonthlyLimit" in body["stats"]

    def test_mock_verification(self, client):
        body = client.post("/leads/verify", json={"limit": 5}).json()
        assert body["mock"] is True
        assert body["message"] == "Mock mode - no actual verification performed"
        assert client.get("/leads/verify").json()["hunterAccount"]["searchesAvailable"] == 450

    def test_enrich_target_emails(self, client):
        response = client.post("/outreach/enrich-emails", json={"target_id": DEMO_TARGET_ID})
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "target_id": DEMO_TARGET_ID,
            "email_found": True,
            "email": "contact@lonestarplumbing.com",
            "email_verified": False,
        }

    def test_enrich_target_errors(self, client):
        assert client.post("/outreach/enrich-emails", json={}).json() == {
            "success": False, "error": "target_id is required"
        }
        response = client.post("/outreach/enrich-emails", json={"target_id": "nope"})
        assert response.status_code == 404

    def test_send_reply_once(self, client, container):
        response = client.post(f"/replies/{DEMO_REPLY_ID}/send")
        assert response.status_code == 200
        body = response.json()
        assert body["messageId"].startswith("mock-")
        assert body["sentTo"] == "dana@sierraairmech.com"
        assert container.email_sender.sent[-1]["subject"] == "Re: HVAC jobs in Fresno"

        again = client.post(f"/replies/{DEMO_REPLY_ID}/send", json={"editedBody": "Hi"})
        assert again.status_code == 400
        assert again.json()["error"] == "Reply already sent"

    def test_reject_reply(self, client):
        assert client.delete(f"/replies/{DEMO_REPLY_ID}/send").json() == {"success": True}

        missing = client.delete("/replies/nope/send")
        assert missing.status_code == 404
        assert missing.json()["error"] == "Reply with id 'nope' not found"
