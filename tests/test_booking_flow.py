from datetime import date

import pytest

from healthbot.booking import (
    BookingFlowController, convert_to_24_hour, format_api_datetime, format_display_datetime
)
from healthbot.chatbot import HealthChatbot
from healthbot.errors import UpstreamUnavailable
from healthbot.models import BookingResult, BookingStage


class TestTimeConversion:
    @pytest.mark.parametrize("label, expected", [
        ("12:00 AM", "00:00"),
        ("12:30 AM", "00:30"),
        ("9:00 AM", "09:00"),
        ("11:00 AM", "11:00"),
        ("12:00 PM", "12:00"),
        ("2:00 PM", "14:00"),
        ("11:59 PM", "23:59"),
    ])
    def test_convert_to_24_hour(self, label, expected):
        assert convert_to_24_hour(label) == expected

    @pytest.mark.parametrize("label", ["14:00", "2 PM", "13:00 PM", "0:15 AM"])
    def test_rejects_malformed_labels(self, label):
        with pytest.raises(ValueError):
            convert_to_24_hour(label)

    def test_api_and_display_forms(self):
        day = date(2024, 3, 15)
        assert format_api_datetime(day, "2:00 PM") == "2024-03-15 14:00:00"
        assert format_display_datetime(day, "2:00 PM") == "3/15/2024 at 2:00 PM"


class TestDoctorSelection:
    def test_general_appointment_lists_doctors(self, bot, store):
        reply = bot.get_response("u1", "general_appointment")

        actions = [opt.action for opt in reply.options]
        assert actions[:3] == ["book_doctor_1", "book_doctor_2", "book_doctor_3"]
        assert "₹750" in reply.message
        assert store.get("u1").stage == BookingStage.AWAITING_DOCTOR

    def test_specialist_listing_groups_by_specialization(self, bot):
        reply = bot.get_response("u1", "specialist_appointment")

        actions = [opt.action for opt in reply.options]
        assert "book_specialist_cardiology" in actions
        assert "book_specialist_general_medicine" in actions
        assert "2 doctors available" in reply.message

    def test_specialist_doctors_are_filtered(self, bot):
        reply = bot.get_response("u1", "book_specialist_cardiology")

        actions = [opt.action for opt in reply.options if opt.action.startswith("book_doctor_")]
        assert actions == ["book_doctor_1", "book_doctor_3"]

    def test_unknown_doctor_id(self, bot, store):
        reply = bot.get_response("u1", "book_doctor_999")

        assert "Doctor Not Found" in reply.message
        assert reply.options[0].action == "general_appointment"
        session = store.get("u1")
        assert session.draft is None
        assert session.stage == BookingStage.IDLE

    def test_doctor_selection_creates_draft(self, bot, store):
        reply = bot.get_response("u1", "book_doctor_1")

        draft = store.get("u1").draft
        assert draft.doctor_id == "1"
        assert draft.hospital_id == "10"
        assert draft.fee == "750"
        assert draft.location == "Clinic"
        assert draft.hospital_name == "City Heart Center"
        assert store.get("u1").stage == BookingStage.AWAITING_SYMPTOM
        assert "Consultation with Dr. Asha Rao" in reply.message
        assert [opt.action for opt in reply.options][-1] == "symptom_other"

    def test_missing_fee_defaults_to_500(self, bot, store):
        bot.get_response("u1", "book_doctor_2")

        draft = store.get("u1").draft
        assert draft.fee == "500"
        assert draft.location == "Block B"
        assert draft.hospital_name == "Healthcare Center"

    def test_no_doctors_available(self, bot, fake_api):
        fake_api.doctors = []

        reply = bot.get_response("u1", "general_appointment")

        assert "No Doctors Available" in reply.message


class TestSymptomCapture:
    def test_preset_symptom_advances_to_time_slots(self, bot, store):
        bot.get_response("u1", "book_doctor_1")
        reply = bot.get_response("u1", "symptom_cold")

        session = store.get("u1")
        assert session.draft.symptoms == "Cold, cough, and respiratory issues"
        assert session.stage == BookingStage.AWAITING_TIME_SLOT
        assert "confirm_today_10am" in [opt.action for opt in reply.options]

    def test_other_symptom_expects_free_text(self, bot, store):
        bot.get_response("u1", "book_doctor_1")
        reply = bot.get_response("u1", "symptom_other")

        assert reply.expecting_input is True
        assert store.get("u1").stage == BookingStage.AWAITING_SYMPTOM_TEXT

    def test_short_free_text_reprompts(self, bot, store):
        bot.get_response("u1", "book_doctor_1")
        bot.get_response("u1", "symptom_other")

        reply = bot.get_response("u1", "  ab  ")

        assert "Please Provide More Details" in reply.message
        assert reply.expecting_input is True
        session = store.get("u1")
        assert session.stage == BookingStage.AWAITING_SYMPTOM_TEXT
        assert session.draft.symptoms is None

    def test_free_text_is_trimmed_and_stored(self, bot, store):
        bot.get_response("u1", "book_doctor_1")
        bot.get_response("u1", "symptom_other")

        reply = bot.get_response("u1", "  joint pain since Monday  ")

        session = store.get("u1")
        assert session.draft.symptoms == "joint pain since Monday"
        assert session.stage == BookingStage.AWAITING_TIME_SLOT
        assert "Select Time Slot" in reply.message

    def test_free_text_wins_over_menu_names(self, bot, store):
        bot.get_response("u1", "book_doctor_1")
        bot.get_response("u1", "symptom_other")

        bot.get_response("u1", "main")

        assert store.get("u1").draft.symptoms == "main"

    def test_back_to_symptoms_leaves_capture(self, bot, store):
        bot.get_response("u1", "book_doctor_1")
        bot.get_response("u1", "symptom_other")

        reply = bot.get_response("u1", "back_to_symptoms")

        assert store.get("u1").stage == BookingStage.AWAITING_SYMPTOM
        assert store.get("u1").draft.symptoms is None
        assert "symptom_regular" in [opt.action for opt in reply.options]

    def test_custom_symptom_submit_reads_additional_data(self, bot, store):
        bot.get_response("u1", "book_doctor_1")
        bot.get_response("u1", "symptom_other")

        bot.get_response("u1", "custom_symptom_submit", {"symptoms": "skin rash"})

        assert store.get("u1").draft.symptoms == "skin rash"

    def test_symptom_without_draft_reports_expired_booking(self, bot, store):
        reply = bot.get_response("u1", "symptom_fever")

        assert "Booking Session Expired" in reply.message
        assert store.get("u1").draft is None


class TestTimeSlots:
    def test_slot_selection_moves_to_confirmation(self, bot, store, book_until_confirmation):
        reply = book_until_confirmation("u1", slot="confirm_tomorrow_2pm")

        draft = store.get("u1").draft
        assert draft.appointment_date == date(2024, 3, 15)
        assert draft.appointment_time == "2:00 PM"
        assert store.get("u1").stage == BookingStage.AWAITING_CONFIRMATION
        assert "3/15/2024 at 2:00 PM" in reply.message
        assert [opt.action for opt in reply.options] == [
            "final_confirm_appointment", "book_doctor_1", "book_appointment"
        ]

    def test_today_slot_uses_today(self, store, book_until_confirmation):
        book_until_confirmation("u1", slot="confirm_today_9am")

        assert store.get("u1").draft.appointment_date == date(2024, 3, 14)

    def test_unknown_slot_is_not_recognized(self, bot, store, book_until_confirmation):
        book_until_confirmation("u1", slot="confirm_today_9am")

        reply = bot.get_response("u1", "confirm_today_4pm")

        assert "Option Not Recognized" in reply.message
        draft = store.get("u1").draft
        assert draft.appointment_time == "9:00 AM"
        assert draft.slot_action == "confirm_today_9am"

    def test_slot_without_draft(self, bot, store):
        reply = bot.get_response("u1", "confirm_today_9am")

        assert "Booking Session Expired" in reply.message
        assert store.get("u1").draft is None

    def test_unknown_slot_without_draft_is_not_recognized(self, bot, store):
        reply = bot.get_response("u1", "confirm_today_7pm")

        assert "Option Not Recognized" in reply.message
        assert store.get("u1").draft is None


class TestGuestDrafts:
    def test_unknown_slot_creates_no_placeholder(self, fake_api, store):
        booking = BookingFlowController(fake_api, allow_guest_drafts=True, today=lambda: date(2024, 3, 14))
        guest_bot = HealthChatbot(fake_api, store, booking=booking)

        reply = guest_bot.get_response("g1", "confirm_today_7pm")

        assert "Option Not Recognized" in reply.message
        assert store.get("g1").draft is None

    def test_placeholder_draft_when_enabled(self, fake_api, store):
        booking = BookingFlowController(fake_api, allow_guest_drafts=True, today=lambda: date(2024, 3, 14))
        guest_bot = HealthChatbot(fake_api, store, booking=booking)

        reply = guest_bot.get_response("g1", "symptom_fever")

        draft = store.get("g1").draft
        assert draft.is_placeholder is True
        assert draft.symptoms == "Fever and related symptoms"
        assert "Select Time Slot" in reply.message

    def test_placeholder_draft_cannot_be_submitted(self, fake_api, store, session_data):
        booking = BookingFlowController(fake_api, allow_guest_drafts=True, today=lambda: date(2024, 3, 14))
        guest_bot = HealthChatbot(fake_api, store, booking=booking)

        guest_bot.get_response("g1", "confirm_today_9am", session_data=session_data)
        reply = guest_bot.get_response("g1", "final_confirm_appointment")

        assert "Choose a Doctor First" in reply.message
        assert "book_appointment" not in fake_api.call_names()


class TestSubmission:
    def test_successful_booking(self, bot, store, fake_api, session_data, book_until_confirmation):
        bot.get_response("u1", "main", session_data=session_data)
        book_until_confirmation("u1")

        reply = bot.get_response("u1", "final_confirm_appointment")

        name, (patient_id, payload) = fake_api.calls[-1]
        assert name == "book_appointment"
        assert patient_id == "42"
        assert payload == {
            "doctor_id": "1",
            "hospital_id": "10",
            "date_time": "2024-03-15 14:00:00",
            "symptoms": "Fever and related symptoms",
        }
        assert "Appointment Booked Successfully" in reply.message
        assert "101" in reply.message
        session = store.get("u1")
        assert session.draft is None
        assert session.stage == BookingStage.IDLE

    def test_symptoms_default_to_general_consultation(self, bot, fake_api, session_data):
        bot.get_response("u1", "main", session_data=session_data)
        bot.get_response("u1", "book_doctor_2")
        bot.get_response("u1", "confirm_today_3pm")

        bot.get_response("u1", "final_confirm_appointment")

        _, (_, payload) = fake_api.calls[-1]
        assert payload["symptoms"] == "General consultation"
        assert payload["date_time"] == "2024-03-14 15:00:00"

    def test_upstream_failure_keeps_draft_for_retry(self, bot, store, fake_api, session_data, book_until_confirmation):
        bot.get_response("u1", "main", session_data=session_data)
        book_until_confirmation("u1")
        fake_api.errors["book_appointment"] = UpstreamUnavailable("timed out")

        reply = bot.get_response("u1", "final_confirm_appointment")

        assert "Service Temporarily Unavailable" in reply.message
        session = store.get("u1")
        assert session.draft is not None
        assert session.stage == BookingStage.AWAITING_CONFIRMATION

        del fake_api.errors["book_appointment"]
        retry = bot.get_response("u1", "final_confirm_appointment")
        assert "Appointment Booked Successfully" in retry.message

    def test_rejected_booking_keeps_draft(self, bot, store, fake_api, session_data, book_until_confirmation):
        bot.get_response("u1", "main", session_data=session_data)
        book_until_confirmation("u1")
        fake_api.booking_results.append(BookingResult(success=False, error="Slot taken"))

        reply = bot.get_response("u1", "final_confirm_appointment")

        assert "Service Temporarily Unavailable" in reply.message
        assert store.get("u1").draft is not None

    def test_identical_flows_book_twice(self, bot, fake_api, session_data, book_until_confirmation):
        bot.get_response("u1", "main", session_data=session_data)

        book_until_confirmation("u1")
        bot.get_response("u1", "final_confirm_appointment")
        book_until_confirmation("u1")
        bot.get_response("u1", "final_confirm_appointment")

        bookings = [args for name, args in fake_api.calls if name == "book_appointment"]
        assert len(bookings) == 2
        assert bookings[0] == bookings[1]

    def test_confirm_twice_after_success_does_not_rebook(self, bot, fake_api, session_data, book_until_confirmation):
        bot.get_response("u1", "main", session_data=session_data)
        book_until_confirmation("u1")
        bot.get_response("u1", "final_confirm_appointment")

        reply = bot.get_response("u1", "final_confirm_appointment")

        assert "Booking Session Expired" in reply.message
        assert fake_api.call_names().count("book_appointment") == 1

    def test_submission_requires_identity(self, bot, store, fake_api, book_until_confirmation):
        book_until_confirmation("u1")

        reply = bot.get_response("u1", "final_confirm_appointment")

        assert "Authentication Required" in reply.message
        assert "book_appointment" not in fake_api.call_names()
        assert store.get("u1").draft is not None
