"""
Tests for license-board parsing and the staging import.
"""

from datetime import date

import pytest

from src.config import Trade
from src.leads.domain import CaliforniaBoard, FloridaBoard, build_boards, load_classification_tables


@pytest.fixture(scope="module")
def boards():
    return build_boards(load_classification_tables())


def _cslb(number, classification="C-20", status="Active", **extra):
    return {
        "LICENSE_NUMBER": number,
        "BUSINESS_NAME": "Valley Comfort Inc",
        "PERSONNEL_NAME": "Ana Maria Soto",
        "PRIMARY_CLASSIFICATION": classification,
        "LICENSE_STATUS": status,
        "CITY": "Fresno",
        "ZIP": "93721",
        **extra,
    }


class TestCaliforniaBoard:

    def test_board_types(self, boards):
        assert isinstance(boards["california"], CaliforniaBoard)
        assert isinstance(boards["florida"], FloridaBoard)

    def test_trade_from_primary_classification(self, boards):
        board = boards["california"]
        assert board.trade_type(_cslb("1", "C-36")) == Trade.PLUMBING
        assert board.trade_type(_cslb("1", "C10")) == Trade.ELECTRICAL
        assert board.trade_type(_cslb("1", "B")) == Trade.GENERAL

    def test_filter_reads_all_classifications(self, boards):
        board = boards["california"]
        record = _cslb("1", "B", ALL_CLASSIFICATIONS="B, C-20")
        assert board.matches(record, [Trade.HVAC])
        assert not board.matches(record, [Trade.PLUMBING])
        assert not board.matches(_cslb("1", "C-33"), [Trade.HVAC, Trade.PLUMBING, Trade.ELECTRICAL])

    def test_only_explicit_inactive_status_skips(self, boards):
        board = boards["california"]
        assert board.is_inactive(_cslb("1", status="Expired"))
        assert not board.is_inactive(_cslb("1", status=""))
        assert not board.is_inactive(_cslb("1", status="Active"))

    def test_staging_row(self, boards):
        row = boards["california"].to_staging(_cslb("77", EXPIRE_DATE="04/30/2026", ADDRESS="12 Elm St"))
        assert row["source"] == "cslb"
        assert row["license_status"] == "active"
        assert row["first_name"] == "Ana"
        assert row["last_name"] == "Maria Soto"
        assert row["business_name"] == "Valley Comfort Inc"
        assert row["license_expiration"] == date(2026, 4, 30)
        assert row["address"] == "12 Elm St, Fresno, 93721"
        assert row["job_title"] == "Contractor"
        assert row["state"] == "CA"
        assert row["trade_type"] == Trade.HVAC


class TestFloridaBoard:

    def _record(self, occupation, status="Current"):
        return {
            "LICENSE_NUMBER": "CAC1819283",
            "OCCUPATION_CODE": occupation,
            "LICENSE_STATUS": status,
            "FIRST_NAME": "Luis",
            "MIDDLE_NAME": "A",
            "LAST_NAME": "Ferrer",
            "CITY": "Tampa",
        }

    def test_occupation_patterns(self, boards):
        board = boards["florida"]
        assert board.trade_type(self._record("Certified Air Conditioning Contractor")) == Trade.HVAC
        assert board.trade_type(self._record("Certified Plumbing Contractor")) == Trade.PLUMBING
        assert board.trade_type(self._record("Certified General Contractor")) == Trade.GENERAL
        assert not board.matches(self._record("Certified Pool Contractor"), [Trade.HVAC])

    def test_inactive_markers(self, boards):
        board = boards["florida"]
        assert board.is_inactive(self._record("Certified AC", status="I"))
        assert board.is_inactive(self._record("Certified AC", status="Revoked - Disciplinary"))
        assert not board.is_inactive(self._record("Certified AC", status="Current"))

    def test_person_is_the_business(self, boards):
        row = boards["florida"].to_staging(self._record("Certified AC"))
        assert row["full_name"] == "Luis A Ferrer"
        assert row["business_name"] == "Luis A Ferrer"
        assert row["job_title"] == "Certified AC"
        assert row["state"] == "FL"
        assert row["address"] == "Tampa, FL"


# ========== API ==========

class TestImportApi:

    def test_import_dedupes_filters_and_skips(self, client):
        records = [
            _cslb("1045521"),                    # already staged by the seed data
            _cslb("2000001"),
            _cslb("2000001"),                    # repeated in the upload
            _cslb("2000002", "C-36", "Expired"),
            _cslb("2000003", "C-33"),            # painting, filtered out
        ]
        response = client.post("/leads/import/california", json={"records": records})
        assert response.status_code == 200
        body = response.json()
        assert body["results"] == {
            "total": 5,
            "filtered": 4,
            "imported": 1,
            "skipped": 1,
            "duplicates": 2,
            "errors": [],
        }
        assert body["message"] == "Imported 1 CA contractors to staging table (2 duplicates skipped)"

        again = client.post("/leads/import/california", json={"records": records[1:2]}).json()
        assert again["results"]["imported"] == 0
        assert again["results"]["duplicates"] == 1

    def test_trade_filter_and_limit(self, client):
        records = [_cslb("3000001", "C-10"), _cslb("3000002", "C-20"), _cslb("3000003", "C-10")]
        body = client.post(
            "/leads/import/california",
            json={"records": records, "tradeFilter": ["Electrical"], "limit": 1}
        ).json()
        assert body["results"]["filtered"] == 2
        assert body["results"]["imported"] == 1

    def test_stats(self, client):
        body = client.get("/leads/import/florida").json()
        assert body["success"] is True
        assert body["stats"]["source"].startswith("Florida DBPR")
        assert body["stats"]["total"] == 1
        assert body["stats"]["byTrade"][Trade.HVAC] == 1

    def test_records_required(self, client):
        response = client.post("/leads/import/california", json={})
        assert response.status_code == 400
        assert response.json()["error"] == "records array is required"

    def test_unknown_board(self, client):
        response = client.post("/leads/import/texas", json={"records": []})
        assert response.status_code == 404
