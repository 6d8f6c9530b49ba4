import pytest
import requests

from healthbot.api_client import HealthcareAPIClient
from healthbot.errors import SessionExpired, UpstreamUnavailable
from healthbot.identity import SessionBridge
from healthbot.models import ConversationSession
from healthbot.settings import PLACEHOLDER_TOKEN, Settings


class FakeResponse:
    def __init__(self, status_code=200, body=None, text="", cookies=None):
        self.status_code = status_code
        self._body = body
        self.text = text
        self.cookies = cookies or {}

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("No JSON body")
        return self._body


class FakeHTTP:
    """Replays queued responses and records each outgoing request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        self.requests.append({"method": method, "url": url, "headers": headers, "timeout": timeout, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_client(*responses, **kwargs):
    http = FakeHTTP(*responses)
    client = HealthcareAPIClient(base_url="http://api.test/api/", http=http, timeout=5, **kwargs)
    return client, http


@pytest.fixture
def bridge():
    bridge = SessionBridge(ConversationSession(user_id="u1"))
    bridge.bind({"patient": {"patient_id": 42}, "sessionToken": "user-tok"})
    return bridge


class TestHeaders:
    def test_service_credentials_without_bridge(self):
        client, http = make_client(FakeResponse(body=[]), api_key="key-1", token="svc-tok")

        client.list_doctors()

        sent = http.requests[0]
        assert sent["url"] == "http://api.test/api/doctors"
        assert sent["headers"]["X-API-Key"] == "key-1"
        assert sent["headers"]["Authorization"] == "Bearer svc-tok"
        assert sent["timeout"] == 5

    def test_bound_token_is_used_for_patient_calls(self, bridge):
        client, http = make_client(FakeResponse(body={"appointments": []}), api_key=None, token="svc-tok")

        client.get_patient_appointments(bridge, "42")

        sent = http.requests[0]
        assert sent["url"] == "http://api.test/api/patient/42/appointments"
        assert sent["headers"]["Authorization"] == "Bearer user-tok"


class TestErrors:
    def test_401_clears_binding(self, bridge):
        client, _ = make_client(FakeResponse(status_code=401, body={"error": "expired"}))

        with pytest.raises(SessionExpired):
            client.book_appointment(bridge, "42", {"doctor_id": "1"})

        assert bridge.binding is None

    def test_401_on_listing_is_not_degraded(self, bridge):
        client, _ = make_client(FakeResponse(status_code=401))

        with pytest.raises(SessionExpired):
            client.get_patient_reports(bridge, "42")

    def test_listing_degrades_on_server_error(self, bridge):
        client, _ = make_client(FakeResponse(status_code=500, body={"error": "boom"}))

        result = client.get_patient_prescriptions(bridge, "42")

        assert result.items == []
        assert result.failed is True
        assert "boom" in result.error

    def test_listing_degrades_on_timeout(self, bridge):
        client, _ = make_client(requests.exceptions.Timeout("slow"))

        result = client.get_patient_lab_tests(bridge, "42")

        assert result.failed is True
        assert "timed out" in result.error

    def test_timeout_raises_for_public_listing(self):
        client, _ = make_client(requests.exceptions.Timeout("slow"))

        with pytest.raises(UpstreamUnavailable):
            client.list_doctors()

    def test_connection_error(self):
        client, _ = make_client(requests.exceptions.ConnectionError("refused"))

        assert client.test_connection()["success"] is False

    def test_non_json_body(self):
        client, _ = make_client(FakeResponse(body=None, text="<html>"))

        with pytest.raises(UpstreamUnavailable):
            client.list_hospitals()


class TestListings:
    def test_lab_tests_key(self, bridge):
        client, http = make_client(FakeResponse(body={"lab_tests": [{"test_id": 1}, "junk"]}))

        result = client.get_patient_lab_tests(bridge, "42")

        assert http.requests[0]["url"].endswith("/patient/42/lab-tests")
        assert result.items == [{"test_id": 1}]
        assert result.failed is False

    def test_doctors_as_plain_list(self):
        client, _ = make_client(FakeResponse(body=[
            {"doctor_id": 1, "name": "Dr. A", "hospital_id": 10},
            {"name": "No Id"},
        ]))

        doctors = client.list_doctors()

        assert len(doctors) == 1
        assert doctors[0].doctor_id == "1"
        assert doctors[0].hospital_id == "10"

    def test_doctors_wrapped_and_filtered(self):
        client, http = make_client(FakeResponse(body={"doctors": [{"doctor_id": "7", "specialization": "ENT"}]}))

        doctors = client.list_doctors(hospital_id="3")

        assert http.requests[0]["params"] == {"hospital_id": "3"}
        assert doctors[0].specialty == "ENT"

    def test_hospitals_wrapped(self):
        client, _ = make_client(FakeResponse(body={"hospitals": [{"hospital_id": 1, "name": "City"}]}))

        assert [h.name for h in client.list_hospitals()] == ["City"]


class TestBooking:
    @pytest.mark.parametrize("body, expected_id", [
        ({"success": True, "appointment_id": 9}, "9"),
        ({"appointment": {"id": 12}}, "12"),
        ({"id": 3}, "3"),
        ({"success": True}, None),
    ])
    def test_success_shapes(self, bridge, body, expected_id):
        client, http = make_client(FakeResponse(status_code=201, body=body))

        result = client.book_appointment(bridge, "42", {"doctor_id": "1"})

        assert result.success is True
        assert result.appointment_id == expected_id
        assert http.requests[0]["json"] == {"doctor_id": "1"}
        assert http.requests[0]["method"] == "POST"

    def test_rejected_booking(self, bridge):
        client, _ = make_client(FakeResponse(body={"success": False, "message": "Slot taken"}))

        result = client.book_appointment(bridge, "42", {})

        assert result.success is False
        assert result.error == "Slot taken"

    def test_server_error(self, bridge):
        client, _ = make_client(FakeResponse(status_code=503, text="down"))

        with pytest.raises(UpstreamUnavailable) as exc_info:
            client.book_appointment(bridge, "42", {})

        assert exc_info.value.status_code == 503


class TestAuthenticate:
    def test_patient_sign_in(self):
        client, http = make_client(FakeResponse(
            body={"success": True, "patient_id": 42, "name": "Riya", "email": "riya@example.com"},
            cookies={"sid": "abc"},
        ))

        result = client.authenticate("patient", "riya@example.com", "secret")

        assert http.requests[0]["url"] == "http://api.test/api/patient/signin"
        assert result.success is True
        assert result.patient.id == "42"
        assert result.cookies == ["sid=abc"]

    def test_doctor_sign_in(self):
        client, _ = make_client(FakeResponse(body={"success": True, "doctor_id": 3, "specialization": "ENT"}))

        result = client.authenticate("doctor", "doc@example.com", "secret")

        assert result.doctor.id == "3"
        assert result.patient is None

    def test_rejected_credentials(self):
        client, _ = make_client(FakeResponse(status_code=401, body={"error": "Invalid credentials"}))

        result = client.authenticate("patient", "x@example.com", "wrong")

        assert result.success is False
        assert result.error == "Invalid credentials"

    def test_unknown_account_kind(self):
        client, _ = make_client()

        with pytest.raises(ValueError):
            client.authenticate("admin", "a@example.com", "pw")


class TestPatientRecords:
    def test_dashboard(self, bridge):
        client, _ = make_client(FakeResponse(body={
            "success": True,
            "patient": {"patient_id": 42, "name": "Riya"},
            "reports_count": 3,
            "upcoming_appointments_count": 1,
        }))

        dashboard = client.get_patient_dashboard(bridge, "42")

        assert dashboard["profile"].name == "Riya"
        assert dashboard["summary"] == {"reports_count": 3, "upcoming_appointments": 1}
        assert dashboard["recent_appointments"] == []

    def test_dashboard_not_found(self, bridge):
        client, _ = make_client(FakeResponse(status_code=404, body={"error": "missing"}))

        with pytest.raises(UpstreamUnavailable) as exc_info:
            client.get_patient_dashboard(bridge, "42")

        assert exc_info.value.status_code == 404
        assert "Patient not found" in str(exc_info.value)

    def test_prescription_details_not_found(self, bridge):
        client, _ = make_client(FakeResponse(status_code=404))

        assert client.get_prescription_details(bridge, "9") is None

    def test_share_report_payload(self, bridge):
        client, http = make_client(FakeResponse(body={"success": True}))

        client.share_report(bridge, "42", "5", ["1", "2"], "see attached")

        sent = http.requests[0]
        assert sent["url"] == "http://api.test/api/patient/42/reports/5/share"
        assert sent["json"] == {"doctor_ids": ["1", "2"], "notes": "see attached"}

    def test_share_lab_test_payload(self, bridge):
        client, http = make_client(FakeResponse(body={"success": True}))

        client.share_lab_test(bridge, "42", "77", "3")

        sent = http.requests[0]
        assert sent["url"] == "http://api.test/api/patient/42/lab-tests/77/share"
        assert sent["json"] == {"doctor_id": "3", "notes": ""}


def test_placeholder_token_is_ignored():
    assert Settings(HEALTH_API_TOKEN=PLACEHOLDER_TOKEN).service_token is None
    assert Settings(HEALTH_API_TOKEN="real-token").service_token == "real-token"
