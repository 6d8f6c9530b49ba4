"""
Appointment booking conversation.

Walks one user through doctor selection, symptom capture, time-slot
selection and confirmation, then submits the booking to the healthcare API.
The position in the flow is the session's ``BookingStage``; the collected
details live in its ``AppointmentDraft``.
"""

import re
from collections import OrderedDict
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import menus
from .errors import InvalidSelection, UpstreamUnavailable
from .identity import SessionBridge
from .menus import option
from .models import AppointmentDraft, BookingStage, ChatReply, ConversationSession, Doctor
from .observability import setup_logging
from .settings import settings

logger = setup_logging()


SYMPTOMS = {
    "symptom_regular": "Regular check-up/consultation",
    "symptom_fever": "Fever and related symptoms",
    "symptom_cold": "Cold, cough, and respiratory issues",
    "symptom_headache": "Headache and related pain",
    "symptom_stomach": "Stomach pain, digestive issues",
}

# action -> (day, 12-hour label)
TIME_SLOTS: "OrderedDict[str, Tuple[str, str]]" = OrderedDict([
    ("confirm_today_9am", ("today", "9:00 AM")),
    ("confirm_today_10am", ("today", "10:00 AM")),
    ("confirm_today_2pm", ("today", "2:00 PM")),
    ("confirm_today_3pm", ("today", "3:00 PM")),
    ("confirm_tomorrow_9am", ("tomorrow", "9:00 AM")),
    ("confirm_tomorrow_11am", ("tomorrow", "11:00 AM")),
    ("confirm_tomorrow_2pm", ("tomorrow", "2:00 PM")),
])

SLOT_ACTION_PATTERN = re.compile(r"^confirm_(today|tomorrow)_\d{1,2}(am|pm)$")
TIME_LABEL_PATTERN = re.compile(r"^(\d{1,2}):(\d{2}) (AM|PM)$")

MIN_SYMPTOM_LENGTH = 3
MAX_DOCTORS_LISTED = 5
DEFAULT_SYMPTOMS = "General consultation"

# Accepted while free text is expected; anything else is the symptom text
FREE_TEXT_ESCAPES = ("back_to_symptoms", "custom_symptom_submit")


def convert_to_24_hour(label: str) -> str:
    """
    Convert a 12-hour label to ``HH:MM``.

    >>> convert_to_24_hour("2:00 PM")
    '14:00'
    >>> convert_to_24_hour("12:30 AM")
    '00:30'
    """
    match = TIME_LABEL_PATTERN.match(label.strip())
    if not match:
        raise ValueError(f"Not a 12-hour time label: {label!r}")

    hours, minutes, modifier = int(match.group(1)), match.group(2), match.group(3)
    if hours < 1 or hours > 12:
        raise ValueError(f"Hour out of range in {label!r}")

    if hours == 12:
        hours = 0
    if modifier == "PM":
        hours += 12

    return f"{hours:02d}:{minutes}"


def slot_date(day: str, today: date) -> date:
    return today + timedelta(days=1) if day == "tomorrow" else today


def format_display_datetime(appointment_date: date, label: str) -> str:
    return f"{appointment_date.month}/{appointment_date.day}/{appointment_date.year} at {label}"


def format_api_datetime(appointment_date: date, label: str) -> str:
    """Machine form sent to the API: ``YYYY-MM-DD HH:MM:SS``."""
    return f"{appointment_date.isoformat()} {convert_to_24_hour(label)}:00"


class BookingFlowController:
    """Drives the booking stages for one conversation session at a time."""

    def __init__(
        self,
        api,
        allow_guest_drafts: bool = settings.ALLOW_GUEST_DRAFTS,
        today: Callable[[], date] = date.today,
    ):
        self.api = api
        self.allow_guest_drafts = allow_guest_drafts
        self.today = today

    def handles(self, action: str) -> bool:
        return (
            action in ("general_appointment", "specialist_appointment", "final_confirm_appointment", "symptom_other")
            or action in FREE_TEXT_ESCAPES
            or action in SYMPTOMS
            or action.startswith("book_doctor_")
            or action.startswith("book_specialist_")
            or SLOT_ACTION_PATTERN.match(action) is not None
        )

    def handle(
        self,
        session: ConversationSession,
        bridge: SessionBridge,
        action: str,
        additional_data: Optional[Dict[str, Any]] = None,
    ) -> ChatReply:
        additional_data = additional_data or {}

        if action == "general_appointment":
            return self.show_doctors(session)
        if action == "specialist_appointment":
            return self.show_specialties()
        if action.startswith("book_specialist_"):
            return self.show_doctors(session, specialty_slug=action[len("book_specialist_"):])
        if action.startswith("book_doctor_"):
            return self.select_doctor(session, action[len("book_doctor_"):])
        if action in SYMPTOMS or action == "symptom_other":
            return self.select_symptom(session, action)
        if action == "back_to_symptoms":
            return self.back_to_symptoms(session)
        if action == "custom_symptom_submit":
            text = additional_data.get("symptoms") or additional_data.get("message") or ""
            return self.capture_free_text(session, str(text))
        if action == "final_confirm_appointment":
            return self.submit(session, bridge)
        return self.select_time_slot(session, action)

    # Doctor selection
    def show_doctors(self, session: ConversationSession, specialty_slug: Optional[str] = None) -> ChatReply:
        doctors = self.api.list_doctors()
        title = "🩺 **Book General Consultation**"

        if specialty_slug is not None:
            doctors = [d for d in doctors if menus.specialization_slug(d.specialty) == specialty_slug]
            if doctors:
                specialty = doctors[0].specialty
                title = f"{menus.specialization_icon(specialty)} **Book {specialty} Consultation**"

        if not doctors:
            return menus.no_doctors_available()

        listed = doctors[:MAX_DOCTORS_LISTED]
        session.stage = BookingStage.AWAITING_DOCTOR

        doctor_lines = [
            f"**{d.name}** - {d.specialty}\n"
            f"⭐ {d.rating or '4.5'}/5 ⏰ {d.experience or '10+'} years experience\n"
            f"🏥 {d.hospital_name or 'Available at clinic'}\n"
            f"💰 Consultation Fee: ₹{d.fee}\n"
            f"📅 Available: {d.availability or 'Mon-Fri 9 AM - 5 PM'}"
            for d in listed
        ]
        options = [
            option(f"select_doctor_{d.doctor_id}", f"👨‍⚕️ {d.name} (₹{d.fee})", f"book_doctor_{d.doctor_id}")
            for d in listed
        ]
        options.append(option("book_appointment", "← Back to Appointment Types"))

        return ChatReply(
            message=f"{title}\n\n**Available Doctors:**\n\n" + "\n\n".join(doctor_lines),
            options=options,
        )

    def show_specialties(self) -> ChatReply:
        doctors = self.api.list_doctors()
        if not doctors:
            return menus.no_doctors_available("No Specialists Available")

        grouped: "OrderedDict[str, List[Doctor]]" = OrderedDict()
        for doctor in doctors:
            grouped.setdefault(doctor.specialty, []).append(doctor)

        lines = []
        for specialty, members in list(grouped.items())[:8]:
            count = len(members)
            min_fee = min(int(d.fee) for d in members)
            lines.append(
                f"{menus.specialization_icon(specialty)} **{specialty}**\n"
                f"   👨‍⚕️ {count} doctor{'s' if count > 1 else ''} available\n"
                f"   💰 Starting from ₹{min_fee}"
            )

        options = [
            option(
                f"specialist_{menus.specialization_slug(specialty)}",
                f"{menus.specialization_icon(specialty)} {specialty}",
                f"book_specialist_{menus.specialization_slug(specialty)}",
            )
            for specialty in list(grouped)[:6]
        ]
        options.append(option("book_appointment", "← Back to Appointments"))

        return ChatReply(
            message="👨‍⚕️ **Specialist Consultation**\n\n**Available Specialties:**\n\n" + "\n\n".join(lines),
            options=options,
        )

    def select_doctor(self, session: ConversationSession, doctor_id: str) -> ChatReply:
        doctor = next((d for d in self.api.list_doctors() if d.doctor_id == doctor_id), None)
        if doctor is None:
            logger.warning("Doctor not found for booking", user_id=session.user_id, doctor_id=doctor_id)
            return menus.doctor_not_found()

        session.draft = AppointmentDraft(
            doctor_id=doctor.doctor_id,
            hospital_id=doctor.hospital_id,
            doctor_name=doctor.name,
            specialty=doctor.specialty,
            fee=doctor.fee,
            location=doctor.location or "Clinic",
            hospital_name=doctor.hospital_name or "Healthcare Center",
        )
        session.stage = BookingStage.AWAITING_SYMPTOM

        logger.info("Booking started", user_id=session.user_id, doctor_id=doctor.doctor_id)
        return self.symptom_menu(doctor.name)

    # Symptoms
    def symptom_menu(self, doctor_name: str) -> ChatReply:
        return ChatReply(
            message=(
                f"🩺 **Consultation with {doctor_name}**\n\n**What brings you here today?**\n\n"
                "Please select your primary symptoms or reason for visit:"
            ),
            options=[
                option("symptom_regular", "👩‍⚕️ Regular Check-up"),
                option("symptom_fever", "🤒 Fever"),
                option("symptom_cold", "🤧 Cold/Cough"),
                option("symptom_headache", "🤕 Headache"),
                option("symptom_stomach", "🤢 Stomach Issues"),
                option("symptom_other", "✏️ Other (Type your symptoms)"),
            ],
        )

    def select_symptom(self, session: ConversationSession, action: str) -> ChatReply:
        draft = self._ensure_draft(session)
        if draft is None:
            return menus.booking_expired()

        if action == "symptom_other":
            session.stage = BookingStage.AWAITING_SYMPTOM_TEXT
            return ChatReply(
                message=(
                    "✏️ **Describe Your Symptoms**\n\nPlease type your symptoms or reason for consultation:\n\n"
                    "*Example: Joint pain, difficulty sleeping, skin rash, etc.*"
                ),
                options=[option("back_to_symptoms", "← Back to Symptom Options")],
                expecting_input=True,
            )

        draft.symptoms = SYMPTOMS[action]
        session.stage = BookingStage.AWAITING_TIME_SLOT
        return self.time_slot_menu(draft.doctor_name)

    def capture_free_text(self, session: ConversationSession, text: str) -> ChatReply:
        """Take the user's message as the symptom description."""
        draft = session.draft
        if draft is None:
            session.reset_booking()
            return menus.booking_expired()

        symptoms = (text or "").strip()
        if len(symptoms) < MIN_SYMPTOM_LENGTH:
            session.stage = BookingStage.AWAITING_SYMPTOM_TEXT
            return ChatReply(
                message=(
                    "⚠️ **Please Provide More Details**\n\n"
                    "Please describe your symptoms with at least a few words.\n\n"
                    "*Example: Joint pain, difficulty sleeping, skin rash, etc.*"
                ),
                options=[option("back_to_symptoms", "← Back to Symptom Options")],
                expecting_input=True,
            )

        draft.symptoms = symptoms
        session.stage = BookingStage.AWAITING_TIME_SLOT
        return self.time_slot_menu(draft.doctor_name)

    def back_to_symptoms(self, session: ConversationSession) -> ChatReply:
        if session.draft is None:
            session.reset_booking()
            return menus.booking_expired()

        session.stage = BookingStage.AWAITING_SYMPTOM
        return self.symptom_menu(session.draft.doctor_name)

    # Time slots
    def time_slot_menu(self, doctor_name: str) -> ChatReply:
        today_labels = [label for day, label in TIME_SLOTS.values() if day == "today"]
        tomorrow_labels = [label for day, label in TIME_SLOTS.values() if day == "tomorrow"]

        options = [
            option(action, f"{'🌅' if label.endswith('AM') else '🌞'} {day.capitalize()} {label}")
            for action, (day, label) in TIME_SLOTS.items()
        ]
        options.append(option("book_appointment", "← Back to Appointments"))

        return ChatReply(
            message=(
                f"📅 **Select Time Slot for {doctor_name}**\n\n🗓️ **Available Slots:**\n\n"
                "📅 **Today:**\n" + "\n".join(f"• {label} ✅" for label in today_labels) + "\n\n"
                "📅 **Tomorrow:**\n" + "\n".join(f"• {label} ✅" for label in tomorrow_labels) + "\n\n"
                "**Select your preferred time:**"
            ),
            options=options,
        )

    def select_time_slot(self, session: ConversationSession, action: str) -> ChatReply:
        slot = TIME_SLOTS.get(action)
        if slot is None:
            raise InvalidSelection(f"Unknown time slot: {action}")

        draft = self._ensure_draft(session)
        if draft is None:
            return menus.booking_expired()

        day, label = slot
        draft.slot_action = action
        draft.appointment_date = slot_date(day, self.today())
        draft.appointment_time = label
        session.stage = BookingStage.AWAITING_CONFIRMATION

        summary = (
            "📋 **Appointment Summary:**\n\n"
            f"👨‍⚕️ **Doctor:** {draft.doctor_name}\n"
            f"🏥 **Specialty:** {draft.specialty}\n"
            f"📅 **Date & Time:** {format_display_datetime(draft.appointment_date, label)}\n"
            f"🏥 **Location:** {draft.location}\n"
            f"💰 **Fee:** ₹{draft.fee}"
        )

        return ChatReply(
            message=f"✅ **Confirm Your Appointment**\n\n{summary}\n\n**Please confirm to book this appointment:**",
            options=[
                option("final_confirm_appointment", "✅ Confirm Appointment"),
                option("change_time", "🔄 Change Time", f"book_doctor_{draft.doctor_id}"),
                option("book_appointment", "❌ Cancel"),
            ],
        )

    # Submission
    def submit(self, session: ConversationSession, bridge: SessionBridge) -> ChatReply:
        draft = session.draft
        if draft is None:
            session.reset_booking()
            return menus.booking_expired()

        if draft.is_placeholder:
            return ChatReply(
                message="👨‍⚕️ **Choose a Doctor First**\n\nPlease select a doctor before confirming the appointment.",
                options=[option("general_appointment", "🩺 Choose a Doctor"), menus.back_to_main("← Main Menu")],
            )

        if not draft.has_time_slot:
            session.stage = BookingStage.AWAITING_TIME_SLOT
            return self.time_slot_menu(draft.doctor_name)

        patient = bridge.require_patient()

        payload = {
            "doctor_id": draft.doctor_id,
            "hospital_id": draft.hospital_id,
            "date_time": format_api_datetime(draft.appointment_date, draft.appointment_time),
            "symptoms": draft.symptoms or DEFAULT_SYMPTOMS,
        }

        result = self.api.book_appointment(bridge, patient.id, payload)
        if not result.success:
            raise UpstreamUnavailable(result.error or "Booking failed")

        appointment_id = result.appointment_id or "Generated"
        display_time = format_display_datetime(draft.appointment_date, draft.appointment_time)
        session.reset_booking()

        logger.info(
            "Appointment booked",
            user_id=session.user_id,
            patient_id=patient.id,
            doctor_id=draft.doctor_id,
            appointment_id=appointment_id,
        )

        return ChatReply(
            message=(
                "🎉 **Appointment Booked Successfully!**\n\n📋 **Booking Details:**\n"
                f"• 📄 **Appointment ID:** {appointment_id}\n"
                f"• 👨‍⚕️ **Doctor:** {draft.doctor_name}\n"
                f"• 📅 **Date & Time:** {display_time}\n"
                f"• 🏥 **Location:** {draft.location}\n"
                f"• 💰 **Fee:** ₹{draft.fee}\n\n"
                "📱 **What's Next:**\n• You'll receive SMS/email confirmation\n"
                "• Arrive 15 minutes early\n• Bring valid ID and insurance card"
            ),
            options=[
                option("add_calendar", "📅 Add to Calendar"),
                option("view_appointments", "📋 View My Appointments", "my_appointments"),
                menus.back_to_main("← Main Menu"),
            ],
        )

    def _ensure_draft(self, session: ConversationSession) -> Optional[AppointmentDraft]:
        if session.draft is not None:
            return session.draft

        if not self.allow_guest_drafts:
            session.reset_booking()
            logger.info("Booking step without a draft", user_id=session.user_id)
            return None

        # Guest mode: carry on with a placeholder that cannot be submitted
        session.draft = AppointmentDraft(
            doctor_id="guest",
            doctor_name="our next available doctor",
            is_placeholder=True,
        )
        logger.info("Placeholder booking draft created", user_id=session.user_id)
        return session.draft
