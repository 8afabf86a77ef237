"""
Tests for SLA budgets, the status projector, stage timers and the breach
monitor.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from src.config import AlertType, SLAStatus
from src.core import ValidationException
from src.sla.application.services import SLAMonitorService, SLAService
from src.sla.domain import (
    FALLBACK_SLA,
    SLAConfig,
    SLAPresetTable,
    SLAStatusProjector,
    SLATimer,
    format_minutes,
    next_stage,
    resolve,
)
from src.sla.infrastructure import (
    SLAChangeFeed,
    SLAPresetManager,
    SQLAlchemySLAAlertRepository,
    SQLAlchemySLATimerRepository,
)

START = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)

PRESETS_YAML = """
fallback: {dispatch: 60, assignment: 120, arrival: 240, completion: 480}
presets:
  HVAC:
    emergency: {dispatch: 15, assignment: 30, arrival: 60, completion: 240}
  Plumbing:
    emergency: {dispatch: 10, assignment: 20, arrival: 45, completion: 180}
"""


@pytest.fixture()
def preset_manager(tmp_path):
    path = tmp_path / "sla_presets.yaml"
    path.write_text(PRESETS_YAML)
    manager = SLAPresetManager(path)
    manager.load()
    return manager


def _timer(target=100, completed_at=None, breached=False, stage="dispatch"):
    return SLATimer(
        id="t-1",
        job_id="job-1",
        stage=stage,
        target_minutes=target,
        started_at=START,
        completed_at=completed_at,
        breached=breached,
    )


# ========== Budgets ==========

class TestResolve:

    def test_exact_match(self, preset_manager):
        config = resolve("Plumbing", "emergency", preset_manager.get_presets())
        assert config.as_dict() == {"dispatch": 10, "assignment": 20, "arrival": 45, "completion": 180}

    def test_unknown_pair_uses_fallback(self, preset_manager):
        presets = preset_manager.get_presets()
        assert resolve("HVAC", "flexible", presets) == FALLBACK_SLA
        assert resolve(None, "emergency", presets) == FALLBACK_SLA
        assert resolve("Roofing", "emergency", presets) == FALLBACK_SLA

    def test_missing_file_leaves_fallback_only(self, tmp_path):
        manager = SLAPresetManager(tmp_path / "missing.yaml")
        table = manager.load()
        assert table.flattened() == {}
        assert manager.resolve("HVAC", "emergency") == FALLBACK_SLA

    def test_broken_reload_keeps_previous_table(self, preset_manager):
        preset_manager.path.write_text("presets: [not, a, mapping")
        assert preset_manager.reload() is False
        assert preset_manager.resolve("HVAC", "emergency").dispatch == 15

    def test_packaged_presets_cover_every_trade(self):
        manager = SLAPresetManager()
        manager.load()
        assert len(manager.get_presets().flattened()) == 25

    def test_overrides_replace_single_stages(self):
        config = FALLBACK_SLA.with_overrides(dispatch=5, arrival=None)
        assert config.dispatch == 5
        assert config.arrival == 240
        assert config.total_minutes == 5 + 120 + 240 + 480

    def test_unknown_stage_override_rejected(self):
        with pytest.raises(ValueError):
            FALLBACK_SLA.with_overrides(paperwork=30)


# ========== Projection ==========

class TestProjector:

    def setup_method(self):
        self.projector = SLAStatusProjector(warning_fraction=0.25)

    def test_on_time_then_warning(self):
        timer = _timer(target=100)
        assert self.projector.status(timer, START + timedelta(minutes=70)) == SLAStatus.ON_TIME
        assert self.projector.status(timer, START + timedelta(minutes=80)) == SLAStatus.WARNING

    def test_overdue_unmarked_timer_reads_warning(self):
        timer = _timer(target=30)
        now = START + timedelta(minutes=45)
        assert self.projector.status(timer, now) == SLAStatus.WARNING
        assert self.projector.time_remaining(timer, now) == 0.0
        assert self.projector.progress_percent(timer, now) == 100.0

    def test_completed_and_breached(self):
        done = _timer(completed_at=START + timedelta(minutes=10))
        assert self.projector.status(done, START + timedelta(hours=5)) == SLAStatus.COMPLETED
        assert self.projector.progress_percent(done, START + timedelta(hours=5)) == 10.0

        breached = _timer(breached=True)
        assert self.projector.status(breached, START) == SLAStatus.BREACHED

    def test_overall_status(self):
        assert self.projector.overall_status([], START) == SLAStatus.NO_SLA

        done = _timer(completed_at=START + timedelta(minutes=5))
        running = SLATimer(
            id="t-2", job_id="job-1", stage="assignment", target_minutes=40,
            started_at=START + timedelta(minutes=5),
        )
        assert self.projector.overall_status([done, running], START + timedelta(minutes=10)) == SLAStatus.ON_TIME
        assert self.projector.overall_status([done], START) == SLAStatus.COMPLETED
        assert self.projector.overall_status([done, _timer(breached=True)], START) == SLAStatus.BREACHED

    def test_unknown_stage_rejected(self):
        with pytest.raises(ValueError):
            _timer(stage="paperwork")


def test_format_minutes():
    assert format_minutes(45) == "45m"
    assert format_minutes(120) == "2h"
    assert format_minutes(125) == "2h 5m"
    assert format_minutes(119.9) == "2h"


def test_stage_order():
    assert next_stage("dispatch") == "assignment"
    assert next_stage("completion") is None


def test_preset_table_key_format():
    table = SLAPresetTable(presets={"HVAC": {"emergency": SLAConfig(dispatch=1, assignment=2, arrival=3, completion=4)}})
    assert list(table.flattened()) == ["HVAC-emergency"]


# ========== Timers and monitor ==========

def _services(session, preset_manager):
    timers = SQLAlchemySLATimerRepository(session)
    alerts = SQLAlchemySLAAlertRepository(session)
    return (
        SLAService(timers, alerts, preset_manager),
        SLAMonitorService(timers, alerts, warning_fraction=0.25),
    )


def test_stages_run_one_after_another(database, preset_manager):
    async def scenario():
        async with database() as session:
            service, _ = _services(session, preset_manager)
            config, timers = await service.initialize_timers("job-1", "HVAC", "emergency", now=START)
            assert config.dispatch == 15
            assert [t.stage for t in timers] == ["dispatch"]

            # Initializing again changes nothing
            _, again = await service.initialize_timers(
                "job-1", "Plumbing", "emergency", now=START + timedelta(minutes=1)
            )
            assert len(again) == 1 and again[0].target_minutes == 15

            completed = await service.complete_stage("job-1", "dispatch", now=START + timedelta(minutes=10))
            assert completed is not None

            # Skipping assignment closes it and starts the stage after arrival
            skipped = await service.complete_stage("job-1", "arrival", now=START + timedelta(minutes=11))
            assert skipped.stage == "assignment"
            assert skipped.completed_at == START + timedelta(minutes=11)

            # Nothing open at or before arrival any more
            assert await service.complete_stage("job-1", "arrival", now=START + timedelta(minutes=12)) is None
            return await service.job_snapshot("job-1", now=START + timedelta(minutes=20))

    snapshot = asyncio.run(scenario())
    stages = [t["stage"] for t in snapshot["timers"]]
    assert stages == ["dispatch", "assignment", "completion"]
    assert snapshot["timers"][0]["status"] == SLAStatus.COMPLETED
    assert snapshot["timers"][1]["status"] == SLAStatus.COMPLETED
    assert snapshot["timers"][2]["target_minutes"] == 240
    assert snapshot["active_stage"] == "completion"
    assert snapshot["overall_status"] == SLAStatus.ON_TIME


def test_breached_stage_can_still_complete(database, preset_manager):
    async def scenario():
        async with database() as session:
            service, monitor = _services(session, preset_manager)
            await service.initialize_timers("job-1", "HVAC", "emergency", now=START)

            evaluated = await monitor.evaluate(now=START + timedelta(minutes=60))
            late = await service.complete_stage("job-1", "dispatch", now=START + timedelta(minutes=70))
            snapshot = await service.job_snapshot("job-1", now=START + timedelta(minutes=75))
            return evaluated, late, snapshot

    evaluated, late, snapshot = asyncio.run(scenario())
    assert evaluated["breaches"] == 1
    assert late is not None
    assert late.breached is True
    assert late.completed_at == START + timedelta(minutes=70)

    assert [t["stage"] for t in snapshot["timers"]] == ["dispatch", "assignment"]
    assert snapshot["timers"][0]["status"] == SLAStatus.COMPLETED
    assert snapshot["timers"][0]["breached"] is True
    assert snapshot["active_stage"] == "assignment"
    assert snapshot["timers"][1]["status"] == SLAStatus.ON_TIME


def test_invalid_stage_and_override(database, preset_manager):
    async def scenario():
        async with database() as session:
            service, _ = _services(session, preset_manager)
            with pytest.raises(ValidationException):
                await service.complete_stage("job-1", "paperwork")
            with pytest.raises(ValidationException):
                await service.initialize_timers("job-2", "HVAC", "emergency", {"paperwork": 5})

    asyncio.run(scenario())


def test_monitor_warns_once_then_breaches(database, preset_manager):
    async def scenario():
        async with database() as session:
            service, monitor = _services(session, preset_manager)
            await service.initialize_timers("job-1", "HVAC", "emergency", now=START)

            first = await monitor.evaluate(now=START + timedelta(minutes=12))
            second = await monitor.evaluate(now=START + timedelta(minutes=13))
            third = await monitor.evaluate(now=START + timedelta(minutes=16))
            after = await monitor.evaluate(now=START + timedelta(minutes=30))
            alerts = await service.load_alerts("job-1")
            snapshot = await service.job_snapshot("job-1", now=START + timedelta(minutes=30))
            return first, second, third, after, alerts, snapshot

    first, second, third, after, alerts, snapshot = asyncio.run(scenario())

    assert first["alerts"] == 1 and first["breaches"] == 0
    assert first["details"][0]["type"] == AlertType.WARNING
    assert second["alerts"] == 0
    assert third["breaches"] == 1
    assert after["checked"] == 0

    assert [a.alert_type for a in alerts] == [AlertType.BREACH, AlertType.WARNING]
    assert alerts[0].message == "SLA breached for dispatch stage. Exceeded 15 minute target."
    assert snapshot["overall_status"] == SLAStatus.BREACHED


def test_change_feed_drops_oldest_when_full():
    async def scenario():
        feed = SLAChangeFeed(max_queue=2)
        queue = feed.subscribe("job-1")
        for table in ("sla_timers", "sla_alerts", "sla_timers"):
            feed.publish("job-1", table)
        feed.publish("job-2", "sla_timers")
        events = [queue.get_nowait(), queue.get_nowait()]
        feed.unsubscribe("job-1", queue)
        count = feed.subscriber_count("job-1")
        feed.close()
        return events, count

    events, count = asyncio.run(scenario())
    assert [e["table"] for e in events] == ["sla_alerts", "sla_timers"]
    assert count == 0


# ========== API ==========

class TestSLAApi:

    def test_config_exact_and_default(self, client):
        response = client.get("/sla/config", params={"trade": "HVAC", "urgency": "emergency"})
        assert response.status_code == 200
        body = response.json()
        assert body["config"]["dispatch"] == 15
        assert body["is_default"] is False

        fallback = client.get("/sla/config", params={"trade": "Roofing"}).json()
        assert fallback["is_default"] is True
        assert fallback["total_minutes"] == 900

    def test_seeded_job_has_running_dispatch_timer(self, client):
        body = client.get("/sla/jobs/demo-job-1/timers").json()
        assert body["active_stage"] == "dispatch"
        assert body["timers"][0]["target_minutes"] == 30
        assert body["timers"][0]["status"] == SLAStatus.ON_TIME

    def test_unknown_job_has_no_sla(self, client):
        body = client.get("/sla/jobs/nope/timers").json()
        assert body["overall_status"] == SLAStatus.NO_SLA
        assert body["timers"] == []

    def test_initialize_with_overrides_is_idempotent(self, client):
        payload = {"trade": "Plumbing", "urgency": "emergency", "overrides": {"dispatch": 5}}
        first = client.post("/sla/jobs/job-9/timers", json=payload)
        assert first.status_code == 201
        assert first.json()["config"]["dispatch"] == 5

        second = client.post("/sla/jobs/job-9/timers", json={"trade": "HVAC"})
        assert len(second.json()["timers"]) == 1
        assert second.json()["timers"][0]["target_minutes"] == 5

    def test_complete_stage(self, client):
        response = client.post("/sla/jobs/demo-job-1/stages/dispatch/complete")
        assert response.json() == {
            "success": True,
            "job_id": "demo-job-1",
            "stage": "dispatch",
            "completed": True,
            "next_stage": "assignment",
        }

        bad = client.post("/sla/jobs/demo-job-1/stages/paperwork/complete")
        assert bad.status_code == 400
        assert bad.json()["success"] is False

    def test_evaluate_and_missing_alert(self, client):
        result = client.post("/sla/evaluate").json()
        assert result["success"] is True
        assert result["checked"] >= 1

        missing = client.post("/sla/alerts/nope/acknowledge")
        assert missing.status_code == 404
        assert missing.json()["error"] == "SLA alert with id 'nope' not found"

    def test_stream_sends_snapshot_on_connect_and_on_change(self, client):
        with client.websocket_connect("/sla/jobs/demo-job-1/stream") as ws:
            first = ws.receive_json()
            assert first["active_stage"] == "dispatch"

            client.post("/sla/jobs/demo-job-1/stages/dispatch/complete")
            second = ws.receive_json()
            assert second["active_stage"] == "assignment"
