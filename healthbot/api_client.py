"""
Client for the remote healthcare REST API.

This module maps the API's endpoints (sign-in, patient records, doctors,
hospitals, bookings and sharing) onto a small set of result types so that
the chat layer never has to guess whether a call worked. Patient-scoped
calls take the caller's SessionBridge, which supplies the credentials and is
cleared when the API answers 401.
"""

from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError

from .errors import SessionExpired, UpstreamUnavailable
from .identity import SessionBridge
from .models import (
    AuthResult, BookingResult, Doctor, DoctorProfile, Hospital, ItemsResult, PatientProfile
)
from .observability import setup_logging, trace_operation, mask_secret
from .settings import settings

logger = setup_logging()


class HealthcareAPIClient:
    """
    Request/response client for the healthcare API.

    Transport errors, timeouts and non-2xx answers raise UpstreamUnavailable;
    401 answers clear the caller's binding and raise SessionExpired. Record
    listings are the exception: they degrade to an empty ItemsResult flagged
    as failed so a conversation can carry on.
    """

    def __init__(
        self,
        base_url: str = settings.HEALTH_API_URL,
        api_key: Optional[str] = settings.HEALTH_API_KEY,
        token: Optional[str] = settings.service_token,
        timeout: float = settings.REQUEST_TIMEOUT_SECONDS,
        http: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.token = token
        self.timeout = timeout
        self.http = http or requests.Session()

        logger.info(
            "Healthcare API client configured",
            base_url=self.base_url,
            api_key=mask_secret(api_key),
            service_token=bool(token),
        )

    # Low-level helpers
    def _headers(self, bridge: Optional[SessionBridge] = None) -> Dict[str, str]:
        if bridge is not None:
            return bridge.auth_headers(self.api_key, self.token)

        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        bridge: Optional[SessionBridge] = None,
        allow_error_status: bool = False,
        **kwargs,
    ) -> requests.Response:
        url = f"{self.base_url}{path}"

        with trace_operation(operation, method=method, path=path):
            try:
                response = self.http.request(
                    method, url, headers=self._headers(bridge), timeout=self.timeout, **kwargs
                )
            except requests.exceptions.Timeout as e:
                raise UpstreamUnavailable(f"{operation} timed out after {self.timeout}s") from e
            except requests.exceptions.RequestException as e:
                raise UpstreamUnavailable(f"{operation} failed: {e}") from e

            if allow_error_status:
                return response

            if response.status_code == 401:
                if bridge is not None:
                    bridge.clear()
                raise SessionExpired("Session expired. Please login again.")

            if not response.ok:
                raise UpstreamUnavailable(
                    f"{operation} returned {response.status_code}: {self._error_detail(response)}",
                    status_code=response.status_code,
                )

            return response

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailable("Healthcare API returned a non-JSON body") from e

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return (response.text or "")[:200]
        if isinstance(body, dict):
            return str(body.get("error") or body.get("message") or body)
        return str(body)[:200]

    def _list_records(
        self, bridge: SessionBridge, patient_id: str, path: str, key: str, operation: str
    ) -> ItemsResult:
        try:
            body = self._json(self._request("GET", f"/patient/{patient_id}/{path}", operation, bridge))
        except UpstreamUnavailable as e:
            logger.warning(f"{operation} degraded to empty list", patient_id=patient_id, error=str(e))
            return ItemsResult(items=[], failed=True, error=str(e))

        items = body.get(key) if isinstance(body, dict) else body
        if not isinstance(items, list):
            items = []
        return ItemsResult(items=[item for item in items if isinstance(item, dict)])

    # Authentication
    def authenticate(self, kind: str, email: str, password: str) -> AuthResult:
        """Sign a patient or doctor in with the API's own credentials."""
        if kind not in ("patient", "doctor"):
            raise ValueError(f"Unknown account kind: {kind}")

        try:
            response = self._request(
                "POST", f"/{kind}/signin", f"{kind}_signin",
                allow_error_status=True,
                json={"email": email, "password": password},
            )
        except UpstreamUnavailable as e:
            return AuthResult(success=False, error=str(e))

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not response.ok or not isinstance(body, dict) or not body.get("success"):
            error = self._error_detail(response) if not response.ok else (
                body.get("message") if isinstance(body, dict) else None
            )
            logger.warning(f"{kind.capitalize()} authentication failed", status_code=response.status_code)
            return AuthResult(success=False, error=error or "Authentication failed")

        cookies = [f"{name}={value}" for name, value in response.cookies.items()]

        try:
            if kind == "patient":
                profile = PatientProfile(**{**body, "id": body.get("patient_id")})
                logger.info("Patient authenticated", patient_id=profile.id)
                return AuthResult(success=True, patient=profile, cookies=cookies)

            profile = DoctorProfile(**{**body, "id": body.get("doctor_id")})
            logger.info("Doctor authenticated", doctor_id=profile.id)
            return AuthResult(success=True, doctor=profile, cookies=cookies)
        except ValidationError as e:
            return AuthResult(success=False, error=f"Unexpected sign-in response: {e.error_count()} invalid field(s)")

    # Public listings
    def list_doctors(self, hospital_id: Optional[str] = None) -> List[Doctor]:
        params = {"hospital_id": hospital_id} if hospital_id else None
        body = self._json(self._request("GET", "/doctors", "list_doctors", params=params))
        entries = body.get("doctors", []) if isinstance(body, dict) else body

        doctors = []
        for entry in entries or []:
            try:
                doctors.append(Doctor.model_validate(entry))
            except ValidationError:
                logger.warning("Skipping malformed doctor entry")
        return doctors

    def list_hospitals(self) -> List[Hospital]:
        body = self._json(self._request("GET", "/hospitals", "list_hospitals"))
        entries = body.get("hospitals", []) if isinstance(body, dict) else body

        hospitals = []
        for entry in entries or []:
            try:
                hospitals.append(Hospital.model_validate(entry))
            except ValidationError:
                logger.warning("Skipping malformed hospital entry")
        return hospitals

    def test_connection(self) -> Dict[str, Any]:
        try:
            return {"success": True, "hospitals": len(self.list_hospitals())}
        except UpstreamUnavailable as e:
            return {"success": False, "error": str(e)}

    # Patient records
    def get_patient_dashboard(self, bridge: SessionBridge, patient_id: str) -> Dict[str, Any]:
        try:
            response = self._request("GET", f"/patient/{patient_id}/dashboard", "patient_dashboard", bridge)
        except UpstreamUnavailable as e:
            if e.status_code == 404:
                raise UpstreamUnavailable(f"Patient not found (ID: {patient_id})", status_code=404) from e
            raise

        body = self._json(response)
        if not isinstance(body, dict) or not body.get("success"):
            raise UpstreamUnavailable("Failed to retrieve patient dashboard")

        patient = body.get("patient") or {}
        return {
            "profile": PatientProfile.from_payload(patient) or PatientProfile(id=patient_id),
            "profile_extra": patient,
            "summary": {
                "reports_count": body.get("reports_count", 0),
                "upcoming_appointments": body.get("upcoming_appointments_count", 0),
            },
            "recent_appointments": body.get("recent_appointments") or [],
        }

    def get_patient_appointments(self, bridge: SessionBridge, patient_id: str) -> ItemsResult:
        return self._list_records(bridge, patient_id, "appointments", "appointments", "patient_appointments")

    def get_patient_prescriptions(self, bridge: SessionBridge, patient_id: str) -> ItemsResult:
        return self._list_records(bridge, patient_id, "prescriptions", "prescriptions", "patient_prescriptions")

    def get_patient_lab_tests(self, bridge: SessionBridge, patient_id: str) -> ItemsResult:
        return self._list_records(bridge, patient_id, "lab-tests", "lab_tests", "patient_lab_tests")

    def get_patient_reports(self, bridge: SessionBridge, patient_id: str) -> ItemsResult:
        return self._list_records(bridge, patient_id, "reports", "reports", "patient_reports")

    def get_prescription_details(self, bridge: SessionBridge, prescription_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = self._request("GET", f"/prescriptions/{prescription_id}", "prescription_details", bridge)
        except UpstreamUnavailable as e:
            if e.status_code == 404:
                return None
            raise

        body = self._json(response)
        if isinstance(body, dict):
            return body.get("prescription")
        return None

    def prescription_download_url(self, prescription_id: str) -> str:
        return f"{self.base_url}/prescriptions/{prescription_id}/download"

    def lab_test_file_url(self, test_id: str) -> str:
        return f"{self.base_url}/lab-tests/{test_id}/file"

    # Mutations
    def book_appointment(self, bridge: SessionBridge, patient_id: str, payload: Dict[str, Any]) -> BookingResult:
        """
        Create an appointment.

        The API reports success either with a ``success`` flag or by echoing
        the new id (``appointment.id``, ``appointment_id`` or ``id``); this is
        the only place that interprets those shapes.
        """
        response = self._request(
            "POST", f"/patient/{patient_id}/appointments", "book_appointment", bridge, json=payload
        )
        body = self._json(response)
        if not isinstance(body, dict):
            return BookingResult(success=False, error="Unexpected booking response")

        appointment = body.get("appointment") if isinstance(body.get("appointment"), dict) else {}
        appointment_id = appointment.get("id") or body.get("appointment_id") or body.get("id")

        if body.get("success") is True or appointment_id is not None:
            return BookingResult(
                success=True,
                appointment_id=str(appointment_id) if appointment_id is not None else None,
                raw=body,
            )

        return BookingResult(success=False, error=body.get("error") or body.get("message") or "Booking failed", raw=body)

    def share_report(
        self, bridge: SessionBridge, patient_id: str, report_id: str, doctor_ids: List[str], notes: str = ""
    ) -> Dict[str, Any]:
        response = self._request(
            "POST", f"/patient/{patient_id}/reports/{report_id}/share", "share_report", bridge,
            json={"doctor_ids": doctor_ids, "notes": notes},
        )
        body = self._json(response)
        return body if isinstance(body, dict) else {"success": True}

    def share_lab_test(
        self, bridge: SessionBridge, patient_id: str, test_id: str, doctor_id: str, notes: str = ""
    ) -> Dict[str, Any]:
        response = self._request(
            "POST", f"/patient/{patient_id}/lab-tests/{test_id}/share", "share_lab_test", bridge,
            json={"doctor_id": doctor_id, "notes": notes},
        )
        body = self._json(response)
        return body if isinstance(body, dict) else {"success": True}
