from datetime import date

import pytest

from healthbot.booking import BookingFlowController
from healthbot.chatbot import HealthChatbot
from healthbot.models import AuthResult, BookingResult, Doctor, Hospital, ItemsResult, PatientProfile
from healthbot.session_manager import SessionStore


TODAY = date(2024, 3, 14)


class FakeHealthAPI:
    """Stands in for HealthcareAPIClient and records every call."""

    def __init__(self):
        self.calls = []
        self.errors = {}
        self.doctors = [
            Doctor(doctor_id=1, hospital_id=10, name="Dr. Asha Rao", specialization="Cardiology",
                   consultation_fee="₹ 750", hospital_name="City Heart Center"),
            Doctor(doctor_id=2, hospital_id=10, name="Dr. Vikram Sen", specialization="General Medicine",
                   consultation_fee=None, location="Block B"),
            Doctor(doctor_id=3, hospital_id=11, name="Dr. Meera Iyer", specialization="Cardiology",
                   consultation_fee=600),
        ]
        self.hospitals = [Hospital(hospital_id=10, name="City Hospital", location="MG Road", phone="080-1234")]
        self.appointments = ItemsResult(items=[])
        self.prescriptions = ItemsResult(items=[])
        self.lab_tests = ItemsResult(items=[])
        self.reports = ItemsResult(items=[])
        self.booking_results = []
        self.next_appointment_id = 100
        self.auth_result = AuthResult(
            success=True,
            patient=PatientProfile(id="42", name="Riya Sharma", email="riya@example.com"),
            cookies=["sid=abc"],
        )

    def _record(self, name, *args):
        self.calls.append((name, args))
        if name in self.errors:
            raise self.errors[name]

    def call_names(self):
        return [name for name, _ in self.calls]

    def authenticate(self, kind, email, password):
        self._record("authenticate", kind, email, password)
        return self.auth_result

    def list_doctors(self, hospital_id=None):
        self._record("list_doctors", hospital_id)
        return list(self.doctors)

    def list_hospitals(self):
        self._record("list_hospitals")
        return list(self.hospitals)

    def get_patient_dashboard(self, bridge, patient_id):
        self._record("get_patient_dashboard", patient_id)
        return {
            "profile": PatientProfile(id=patient_id, name="Riya Sharma", age=31, blood_group="B+"),
            "profile_extra": {"patient_id": patient_id, "name": "Riya Sharma"},
            "summary": {"reports_count": 2, "upcoming_appointments": 1},
            "recent_appointments": [],
        }

    def get_patient_appointments(self, bridge, patient_id):
        self._record("get_patient_appointments", patient_id)
        return self.appointments

    def get_patient_prescriptions(self, bridge, patient_id):
        self._record("get_patient_prescriptions", patient_id)
        return self.prescriptions

    def get_patient_lab_tests(self, bridge, patient_id):
        self._record("get_patient_lab_tests", patient_id)
        return self.lab_tests

    def get_patient_reports(self, bridge, patient_id):
        self._record("get_patient_reports", patient_id)
        return self.reports

    def get_prescription_details(self, bridge, prescription_id):
        self._record("get_prescription_details", prescription_id)
        return None

    def prescription_download_url(self, prescription_id):
        return f"http://api.test/prescriptions/{prescription_id}/download"

    def lab_test_file_url(self, test_id):
        return f"http://api.test/lab-tests/{test_id}/file"

    def book_appointment(self, bridge, patient_id, payload):
        self._record("book_appointment", patient_id, dict(payload))
        if self.booking_results:
            return self.booking_results.pop(0)
        self.next_appointment_id += 1
        return BookingResult(success=True, appointment_id=str(self.next_appointment_id))

    def share_report(self, bridge, patient_id, report_id, doctor_ids, notes=""):
        self._record("share_report", patient_id, report_id, list(doctor_ids), notes)
        return {"success": True}

    def share_lab_test(self, bridge, patient_id, test_id, doctor_id, notes=""):
        self._record("share_lab_test", patient_id, test_id, doctor_id, notes)
        return {"success": True}


@pytest.fixture
def fake_api():
    return FakeHealthAPI()


@pytest.fixture
def store():
    return SessionStore(session_timeout_minutes=120, max_entries=100)


@pytest.fixture
def bot(fake_api, store):
    booking = BookingFlowController(fake_api, allow_guest_drafts=False, today=lambda: TODAY)
    return HealthChatbot(fake_api, store, booking=booking)


@pytest.fixture
def session_data():
    return {
        "patient": {"patient_id": 42, "name": "Riya Sharma", "email": "riya@example.com"},
        "sessionToken": "tok-abc",
        "authType": "session",
    }


@pytest.fixture
def book_until_confirmation(bot):
    def run(user_id, doctor_id="1", symptom="symptom_fever", slot="confirm_tomorrow_2pm"):
        bot.get_response(user_id, "general_appointment")
        bot.get_response(user_id, f"book_doctor_{doctor_id}")
        bot.get_response(user_id, symptom)
        return bot.get_response(user_id, slot)

    return run
