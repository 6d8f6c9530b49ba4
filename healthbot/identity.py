"""
External session bridge.

The calling app authenticates the patient and passes the profile plus a
bearer token or cookie string with each chat request. The bridge binds that
identity to the requesting user's conversation session so that remote API
calls are made on that user's behalf only. Token authenticity is not checked
here; trust is delegated to the caller.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from .errors import AuthenticationRequired, SessionExpired
from .models import ConversationSession, ExternalSessionBinding, PatientProfile
from .observability import setup_logging
from .settings import settings

logger = setup_logging()


def _normalize_cookies(cookies: Union[str, List[str], None]) -> List[str]:
    if not cookies:
        return []
    if isinstance(cookies, str):
        return [cookies]
    return [str(cookie) for cookie in cookies if cookie]


class SessionBridge:
    """Binds, validates and clears the external identity of one user session."""

    def __init__(
        self,
        session: ConversationSession,
        max_age_hours: int = settings.EXTERNAL_SESSION_MAX_AGE_HOURS,
    ):
        self.session = session
        self.max_age = timedelta(hours=max_age_hours)

    @property
    def binding(self) -> Optional[ExternalSessionBinding]:
        return self.session.binding

    def bind(self, payload: Any) -> bool:
        """
        Bind an externally authenticated identity.

        Accepts ``{"patient": {...}, "sessionToken" | "token": str,
        "cookies": str | [str], "authType": str}``. Returns False and leaves
        the current binding untouched when no usable patient profile is given.
        """
        if not isinstance(payload, dict):
            return False

        patient_data = payload.get("patient")
        if not isinstance(patient_data, dict):
            return False

        try:
            patient = PatientProfile.from_payload(patient_data)
            if patient is None:
                return False

            binding = ExternalSessionBinding(
                patient=patient,
                token=payload.get("sessionToken") or payload.get("token"),
                cookies=_normalize_cookies(payload.get("cookies")),
                auth_type=payload.get("authType") or "session",
            )
        except ValidationError as e:
            logger.warning(
                "Rejected malformed session data",
                user_id=self.session.user_id,
                invalid_fields=e.error_count(),
            )
            return False

        self.session.binding = binding
        self.session.has_external_session = True

        logger.info(
            "External session bound",
            user_id=self.session.user_id,
            patient_id=patient.id,
            auth_type=self.session.binding.auth_type,
        )
        return True

    def bind_profile(self, patient: PatientProfile, cookies: Optional[List[str]] = None) -> None:
        """Bind an identity obtained through the healthcare API's own sign-in."""
        self.session.binding = ExternalSessionBinding(
            patient=patient,
            cookies=cookies or [],
            auth_type="internal",
        )

    def is_valid(self) -> bool:
        """True when a binding exists and is younger than the maximum age."""
        binding = self.session.binding
        if binding is None:
            return False
        return datetime.utcnow() - binding.bound_at < self.max_age

    def clear(self) -> None:
        """Drop the binding entirely."""
        if self.session.binding is not None:
            logger.info("External session cleared", user_id=self.session.user_id)
        self.session.binding = None
        self.session.has_external_session = False

    def require_patient(self) -> PatientProfile:
        """Return the bound patient or raise the matching authentication error."""
        if self.session.binding is None:
            raise AuthenticationRequired("Patient authentication required")

        if not self.is_valid():
            self.clear()
            raise SessionExpired("External session is older than the allowed age")

        return self.session.binding.patient

    def current_patient(self) -> Optional[PatientProfile]:
        if not self.is_valid():
            return None
        return self.session.binding.patient

    def session_type(self) -> Optional[str]:
        binding = self.session.binding
        if binding is None:
            return None
        return "internal" if binding.auth_type == "internal" else "external"

    def auth_headers(self, api_key: Optional[str], default_token: Optional[str] = None) -> Dict[str, str]:
        """
        Headers for an authenticated call.

        Precedence: bound bearer token, bound cookies, then the configured
        service token.
        """
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if api_key:
            headers["X-API-Key"] = api_key

        binding = self.session.binding
        if binding is not None and binding.token:
            headers["Authorization"] = f"Bearer {binding.token}"
        elif binding is not None and binding.cookies:
            headers["Cookie"] = "; ".join(binding.cookies)
        elif default_token:
            headers["Authorization"] = f"Bearer {default_token}"

        return headers
