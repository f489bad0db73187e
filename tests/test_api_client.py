"""
Tests for the visit store REST client (requests.Session mocked)
"""

import sys
from datetime import date
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from hospice_scheduler.api_client import VisitStoreClient
from hospice_scheduler.models import Discipline, Visit, VisitStatus, VisitTag

MON = date(2026, 3, 2)


def response(payload=None, status=200):
    resp = MagicMock()
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status} Error")
    return resp


def visit(vid, day=MON, notes=""):
    return Visit(
        id=vid, patient_id="p1", date=day, discipline=Discipline.RN, staff="Rachelle RN",
        status=VisitStatus.SUGGESTED, tags=frozenset({VisitTag.ROUTINE}), notes=notes,
    )


@pytest.fixture
def client():
    return VisitStoreClient(base_url="http://store.local/", token="abc")


class TestSession:

    def test_token_header(self, client):
        assert client.session.headers["Authorization"] == "Bearer abc"
        assert client._url("visits") == "http://store.local/api/visits"

    def test_login_sets_token(self):
        client = VisitStoreClient(base_url="http://store.local")
        with patch.object(client.session, "post", return_value=response({"token": "xyz"})) as post:
            assert client.login("nurse@example.org", "secret") == "xyz"
        assert post.call_args.args[0] == "http://store.local/api/login"
        assert client.session.headers["Authorization"] == "Bearer xyz"

    def test_login_failure_raises(self):
        client = VisitStoreClient()
        with patch.object(client.session, "post", return_value=response(status=401)):
            with pytest.raises(requests.exceptions.HTTPError):
                client.login("nurse@example.org", "wrong")
        assert "Authorization" not in client.session.headers


class TestReads:

    def test_get_patients_converts_records(self, client):
        records = [{"id": "p1", "name": "Lee, Sam", "socDate": "2026-02-01", "benefitPeriodNumber": 2,
                    "frequency": "2x/week", "assignedRN": "Rachelle RN"}]
        with patch.object(client.session, "get", return_value=response(records)):
            patients = client.get_patients()
        assert patients[0].benefit_period_number == 2
        assert patients[0].start_of_care_date == date(2026, 2, 1)

    def test_get_visits(self, client):
        records = [{"id": "v1", "patientId": "p1", "date": "2026-03-02T09:00:00Z", "discipline": "RN",
                    "staff": "Rachelle RN", "status": "confirmed", "completed": True, "tags": ["routine"]}]
        with patch.object(client.session, "get", return_value=response(records)):
            visits = client.get_visits()
        assert visits[0].date == MON
        assert visits[0].completed

    def test_get_staff_error_propagates(self, client):
        with patch.object(client.session, "get", side_effect=requests.exceptions.ConnectionError("down")):
            with pytest.raises(requests.exceptions.ConnectionError):
                client.get_staff()


class TestWrites:

    def test_create_posts_camel_case(self, client):
        with patch.object(client.session, "post", return_value=response({"ok": True})) as post:
            client.create_visit(visit("v1"))
        body = post.call_args.kwargs["json"]
        assert body["patientId"] == "p1"
        assert body["date"] == "2026-03-02"
        assert body["tags"] == ["routine"]

    def test_delete_returns_false_on_error(self, client):
        with patch.object(client.session, "delete", return_value=response(status=500)):
            assert client.delete_visit("v1") is False

    def test_push_week(self, client):
        stored = [visit("same"), visit("changed"), visit("gone"), visit("old", day=date(2026, 2, 23))]
        wanted = [visit("same"), visit("changed", notes="moved"), visit("new")]
        with patch.object(client.session, "post", return_value=response({})) as post, \
                patch.object(client.session, "put", return_value=response({})) as put, \
                patch.object(client.session, "delete", return_value=response({})) as delete:
            result = client.push_week(wanted, stored, [MON])
        assert result == {"created": ["new"], "updated": ["changed"], "deleted": ["gone"], "failed": []}
        assert post.call_count == 1
        assert put.call_args.args[0].endswith("/api/visits/changed")
        assert delete.call_args.args[0].endswith("/api/visits/gone")

    def test_push_week_records_failures(self, client):
        with patch.object(client.session, "post", return_value=response(status=500)):
            result = client.push_week([visit("new")], [], [MON])
        assert result["failed"] == ["new"]
        assert result["created"] == []
