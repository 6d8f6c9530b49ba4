"""
Data models for the Health ERP chatbot.

This module defines the conversation state kept per user, the records
mirrored from the remote healthcare API, and the Pydantic schemas of the
chat endpoint.
"""

import re
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Union
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_serializer


def _as_id(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return str(value)


# Remote ids arrive as ints or strings; keep them as strings
RecordId = Annotated[str, BeforeValidator(_as_id)]
OptionalRecordId = Annotated[Optional[str], BeforeValidator(_as_id)]


# Enums
class BookingStage(str, Enum):
    IDLE = "idle"
    AWAITING_DOCTOR = "awaiting_doctor"
    AWAITING_SYMPTOM = "awaiting_symptom"
    AWAITING_SYMPTOM_TEXT = "awaiting_symptom_text"
    AWAITING_TIME_SLOT = "awaiting_time_slot"
    AWAITING_CONFIRMATION = "awaiting_confirmation"


# Remote API records
class PatientProfile(BaseModel):
    """Patient as returned by sign-in or supplied by an external session."""

    model_config = ConfigDict(extra="ignore")

    id: RecordId
    name: Optional[str] = None
    email: Optional[str] = None
    dob: Optional[str] = None
    phone: Optional[str] = None
    blood_group: Optional[str] = None
    age: Optional[Union[int, float, str]] = None
    height: Optional[Union[int, float, str]] = None
    weight: Optional[Union[int, float, str]] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> Optional["PatientProfile"]:
        """Build a profile from either ``patient_id`` or ``id``."""
        patient_id = payload.get("patient_id") or payload.get("id")
        if patient_id is None or patient_id == "":
            return None
        return cls(**{**payload, "id": patient_id})


class DoctorProfile(BaseModel):
    """Doctor as returned by the doctor sign-in endpoint."""

    model_config = ConfigDict(extra="ignore")

    id: RecordId
    name: Optional[str] = None
    email: Optional[str] = None
    specialization: Optional[str] = None
    hospital_id: OptionalRecordId = None
    phone: Optional[str] = None


class Doctor(BaseModel):
    """Entry of the public doctor listing."""

    model_config = ConfigDict(extra="ignore")

    doctor_id: RecordId
    hospital_id: OptionalRecordId = None
    name: str = "Doctor"
    specialization: Optional[str] = None
    consultation_fee: Optional[Any] = None
    location: Optional[str] = None
    hospital_name: Optional[str] = None
    rating: Optional[Any] = None
    experience: Optional[Any] = None
    availability: Optional[str] = None

    @property
    def fee(self) -> str:
        """Consultation fee with any markup or currency stripped."""
        raw = self.consultation_fee if self.consultation_fee not in (None, "") else "500"
        return re.sub(r"[^\d]", "", str(raw)) or "500"

    @property
    def specialty(self) -> str:
        return self.specialization or "General Medicine"


class Hospital(BaseModel):
    """Entry of the hospital listing."""

    model_config = ConfigDict(extra="ignore")

    hospital_id: OptionalRecordId = None
    name: str = "Hospital"
    location: Optional[str] = None
    phone: Optional[str] = None


class AuthResult(BaseModel):
    """Outcome of a sign-in call."""

    success: bool
    patient: Optional[PatientProfile] = None
    doctor: Optional[DoctorProfile] = None
    cookies: List[str] = []
    error: Optional[str] = None


class ItemsResult(BaseModel):
    """A patient record listing; ``failed`` marks a degraded empty result."""

    items: List[Dict[str, Any]] = []
    failed: bool = False
    error: Optional[str] = None


class BookingResult(BaseModel):
    """Outcome of an appointment booking call."""

    success: bool
    appointment_id: Optional[str] = None
    error: Optional[str] = None
    raw: Dict[str, Any] = {}


# Conversation State Models (in-memory)
class ExternalSessionBinding(BaseModel):
    """Identity supplied by the calling app and bound to one user's session."""

    patient: PatientProfile
    token: Optional[str] = None
    cookies: List[str] = []
    auth_type: str = "session"
    bound_at: datetime = Field(default_factory=datetime.utcnow)


class AppointmentDraft(BaseModel):
    """In-progress appointment booking for one user."""

    doctor_id: str
    hospital_id: OptionalRecordId = None
    doctor_name: str
    specialty: str = "General Medicine"
    fee: str = "500"
    location: str = "Clinic"
    hospital_name: str = "Healthcare Center"
    symptoms: Optional[str] = None
    slot_action: Optional[str] = None
    appointment_date: Optional[date] = None
    appointment_time: Optional[str] = None  # 12-hour label, e.g. "2:00 PM"
    is_placeholder: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def has_time_slot(self) -> bool:
        return self.appointment_date is not None and self.appointment_time is not None


class HistoryEntry(BaseModel):
    option: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    has_session: bool = False


class ConversationSession(BaseModel):
    """Conversation record for one user id."""

    user_id: str
    history: List[HistoryEntry] = []
    current_menu: str = "main"
    has_external_session: bool = False
    stage: BookingStage = BookingStage.IDLE
    draft: Optional[AppointmentDraft] = None
    binding: Optional[ExternalSessionBinding] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    last_activity: datetime = Field(default_factory=datetime.utcnow)

    @property
    def waiting_for_free_text(self) -> bool:
        return self.stage == BookingStage.AWAITING_SYMPTOM_TEXT

    def reset_booking(self) -> None:
        self.draft = None
        self.stage = BookingStage.IDLE


# API Request/Response Models
class ChatOption(BaseModel):
    id: RecordId
    text: str
    action: str


class ChatReply(BaseModel):
    """Message and options shown to the user for one turn."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    options: List[ChatOption] = []
    expecting_input: Optional[bool] = Field(default=None, alias="expectingInput")

    @model_serializer(mode="wrap")
    def _omit_unset_input(self, handler):
        data = handler(self)
        for key in ("expectingInput", "expecting_input"):
            if key in data and data[key] is None:
                del data[key]
        return data


class ChatRequest(BaseModel):
    """Request model for chat endpoint."""

    user_id: Optional[str] = None
    selected_option: Optional[str] = None
    additional_data: Optional[Dict[str, Any]] = None
    session_data: Optional[Dict[str, Any]] = None
    session_id: Optional[str] = None


class ChatResponse(BaseModel):
    """Response model for chat endpoint."""

    success: bool
    response: ChatReply
    timestamp: str
    user_id: str
    session_id: Optional[str] = None
    has_external_session: bool


class LoginRequest(BaseModel):
    """Request model for binding a user through the API's own sign-in."""

    user_id: str
    email: Optional[str] = None
    password: Optional[str] = None


class BookAppointmentRequest(BaseModel):
    """Request model for direct appointment creation."""

    user_id: str
    doctor_id: str
    hospital_id: OptionalRecordId = None
    date_time: str  # YYYY-MM-DD HH:mm:ss
    symptoms: Optional[str] = None


class AuthStatusResponse(BaseModel):
    success: bool = True
    user_id: str
    is_authenticated: bool
    has_external_session: bool
    session_type: Optional[str] = None
    patient: Optional[PatientProfile] = None
    bound_at: Optional[datetime] = None
