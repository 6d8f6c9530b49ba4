"""
Menu engine for the Health ERP chatbot.

Holds the static navigation menus, the canned replies used for errors and
the informational replies that need no remote data.
"""

import re
from typing import Callable, Dict, Optional

from .models import ChatOption, ChatReply
from .settings import settings


def option(option_id: str, text: str, action: Optional[str] = None) -> ChatOption:
    return ChatOption(id=option_id, text=text, action=action or option_id)


def back_to_main(text: str = "← Back to Main Menu") -> ChatOption:
    return option("main", text, "main")


MENUS: Dict[str, dict] = {
    "main": {
        "message": "🏥 Welcome to Health ERP Assistant! How can I help you today?",
        "options": [
            ("1", "📅 Book Appointment", "book_appointment"),
            ("2", "📋 View Medical Records", "medical_records"),
            ("3", "💊 Prescription Status", "prescription"),
            ("4", "🧪 Lab Reports", "lab_reports"),
            ("5", "🚨 Emergency Contact", "emergency"),
            ("6", "💡 Health Tips", "health_tips"),
            ("7", "👤 Profile Settings", "profile"),
        ],
    },
    "book_appointment": {
        "message": "📅 Which type of appointment would you like to book?",
        "options": [
            ("1", "🩺 General Consultation", "general_appointment"),
            ("2", "👨‍⚕️ Specialist Consultation", "specialist_appointment"),
            ("3", "🔬 Diagnostic Test", "schedule_test"),
            ("4", "📋 View My Appointments", "view_appointments"),
            ("back", "← Back to Main Menu", "main"),
        ],
    },
    "medical_records": {
        "message": "📋 What medical records would you like to access?",
        "options": [
            ("1", "🕐 Recent Visits", "recent_visits"),
            ("2", "📜 Medical History", "medical_history"),
            ("3", "📄 Medical Reports", "patient_reports"),
            ("4", "📤 Share Reports with Doctor", "share_reports_menu"),
            ("back", "← Back to Main Menu", "main"),
        ],
    },
    "prescription": {
        "message": "💊 Prescription Management Options:",
        "options": [
            ("1", "📋 Current Prescriptions", "current_prescription"),
            ("2", "📚 Prescription History", "prescription_history"),
            ("3", "🔄 Refill Request", "refill_request"),
            ("back", "← Back to Main Menu", "main"),
        ],
    },
    "lab_reports": {
        "message": "🧪 Lab Reports and Tests:",
        "options": [
            ("1", "📊 Recent Reports", "recent_reports"),
            ("2", "⏳ Pending Tests", "pending_tests"),
            ("3", "📅 Schedule Lab Test", "schedule_test"),
            ("back", "← Back to Main Menu", "main"),
        ],
    },
}


def menu_reply(name: str) -> Optional[ChatReply]:
    """Return a fresh copy of a static menu, or None when ``name`` is not a menu."""
    menu = MENUS.get(name)
    if menu is None:
        return None
    return ChatReply(
        message=menu["message"],
        options=[option(option_id, text, action) for option_id, text, action in menu["options"]],
    )


# Canned replies for error conditions
def requires_authentication() -> ChatReply:
    return ChatReply(
        message=(
            "🔐 **Authentication Required**\n\nTo access this feature, please:\n\n"
            "1. Login to the main app/website first\n2. Return to the chatbot\n\n"
            "The chatbot will automatically use your login session."
        ),
        options=[option("main", "🏠 Main Menu")],
    )


def session_expired() -> ChatReply:
    return ChatReply(
        message=(
            "🔒 **Session Expired**\n\nYour login session has expired. "
            "Please login again in the main app and return to the chatbot."
        ),
        options=[option("main", "🏠 Main Menu")],
    )


def service_unavailable() -> ChatReply:
    return ChatReply(
        message=(
            "⚠️ **Service Temporarily Unavailable**\n\n"
            "We're experiencing technical difficulties. Please try again in a few moments."
        ),
        options=[option("retry", "🔄 Try Again", "main"), back_to_main()],
    )


def option_not_recognized() -> ChatReply:
    return ChatReply(
        message="🤔 **Option Not Recognized**\n\nI didn't understand that option. Let me help you navigate:",
        options=[
            option("main", "🏠 Main Menu"),
            option("book_appointment", "📅 Book Appointment"),
            option("medical_records", "📋 Medical Records"),
        ],
    )


def booking_expired() -> ChatReply:
    return ChatReply(
        message="⚠️ **Booking Session Expired**\n\nYour appointment session has expired. Please start booking again.",
        options=[
            option("book_appointment", "📅 Book New Appointment"),
            back_to_main("← Main Menu"),
        ],
    )


def doctor_not_found(retry_action: str = "general_appointment", retry_text: str = "← Back to Doctor Selection") -> ChatReply:
    return ChatReply(
        message="⚠️ **Doctor Not Found**\n\nThe selected doctor is no longer available. Please choose another doctor.",
        options=[option(retry_action, retry_text)],
    )


def no_doctors_available(title: str = "No Doctors Available") -> ChatReply:
    return ChatReply(
        message=(
            f"⚠️ **{title}**\n\nSorry, no doctors are currently available for booking. "
            "Please try again later or contact the hospital directly.\n\n"
            f"📞 **Contact Hospital:**\n• Main Line: {settings.HOSPITAL_CONTACT_NUMBER}\n"
            "• Appointment Desk: Extension 123"
        ),
        options=[
            option("emergency", "📞 Hospital Contact"),
            option("book_appointment", "← Back to Appointment Types"),
        ],
    )


# Informational replies
def emergency() -> ChatReply:
    return ChatReply(
        message=(
            "🚨 **EMERGENCY SERVICES** 🚨\n\n**🆘 IMMEDIATE EMERGENCY CONTACTS:**\n"
            "• **Ambulance:** 108 📞\n"
            f"• **Hospital Emergency:** {settings.HOSPITAL_CONTACT_NUMBER} 📞\n"
            "• **Poison Control:** 1066 📞\n• **Fire Emergency:** 101 📞\n• **Police Emergency:** 100 📞\n\n"
            "**⚠️ FOR LIFE-THREATENING EMERGENCIES:**\n**CALL 108 IMMEDIATELY**"
        ),
        options=[option("find_hospital", "🏥 Find Nearest Hospital"), back_to_main()],
    )


def hospitals_unavailable() -> ChatReply:
    return ChatReply(
        message=(
            "🏥 **Emergency Hospitals:**\n\n📍 **Service temporarily unavailable**\n\n"
            "Please contact emergency services directly:\n• **Ambulance:** 108 📞\n"
            f"• **Hospital Emergency:** {settings.HOSPITAL_CONTACT_NUMBER} 📞"
        ),
        options=[option("emergency", "← Back to Emergency Services"), back_to_main()],
    )


def health_tips() -> ChatReply:
    return ChatReply(
        message=(
            "💡 **Daily Health Tips:**\n\n"
            "🚰 **Hydration:** Drink 8-10 glasses of water daily\n"
            "🥗 **Nutrition:** Include fruits and vegetables in every meal\n"
            "🏃‍♀️ **Exercise:** 30 minutes of physical activity daily\n"
            "😴 **Sleep:** 7-8 hours of quality sleep\n"
            "🧘‍♀️ **Mental Health:** Practice meditation or deep breathing"
        ),
        options=[back_to_main()],
    )


def add_calendar() -> ChatReply:
    return ChatReply(
        message=(
            "📅 **Calendar Integration**\n\n✅ Your appointment has been added to your calendar!\n\n"
            "🔔 **Reminders Set:**\n• 24 hours before appointment\n"
            "• 2 hours before appointment\n• 30 minutes before appointment"
        ),
        options=[option("set_additional_reminder", "⏰ Set Additional Reminder"), back_to_main()],
    )


def set_additional_reminder() -> ChatReply:
    return ChatReply(
        message=(
            "⏰ **Additional Reminder Settings**\n\n✅ Additional reminders have been configured!\n\n"
            "🔔 **New Reminders Added:**\n• 1 week before appointment\n• 3 days before appointment\n"
            "• 1 hour before appointment\n• 15 minutes before appointment"
        ),
        options=[option("view_appointments", "📋 View My Appointments", "my_appointments"), back_to_main()],
    )


def cancel_appointment() -> ChatReply:
    return ChatReply(
        message=(
            "❌ **Cancel Appointment**\n\n⚠️ Are you sure you want to cancel your appointment?\n\n"
            "**Cancellation Policy:**\n• Free cancellation up to 24 hours before\n"
            "• 50% charge for cancellation within 24 hours\n• Full charge for no-show"
        ),
        options=[
            option("confirm_cancel", "✅ Yes, Cancel Appointment", "confirm_cancel_appointment"),
            option("keep_appointment", "❌ No, Keep Appointment", "main"),
        ],
    )


def confirm_cancel_appointment() -> ChatReply:
    return ChatReply(
        message=(
            "📞 **Cancellation Request**\n\nOnline cancellation is not connected to the hospital system yet. "
            f"Please call the appointment desk on {settings.HOSPITAL_CONTACT_NUMBER} to cancel."
        ),
        options=[option("view_appointments", "📋 View My Appointments", "my_appointments"), back_to_main()],
    )


def schedule_test() -> ChatReply:
    return ChatReply(
        message=(
            "📅 **Schedule Lab Test**\n\n🏥 **Lab Services Integration**\n\n"
            "Lab test scheduling is being integrated with your hospital's laboratory system. For now, please:\n\n"
            f"📞 **Call Lab Department:**\n• Hospital Lab: {settings.HOSPITAL_CONTACT_NUMBER}\n\n"
            "📅 **Book Through Appointment:**\n• Schedule with your doctor\n"
            "• Doctor will order required tests\n• Lab will contact you for scheduling"
        ),
        options=[
            option("book_appointment", "👨‍⚕️ Book Doctor Consultation"),
            option("emergency", "📞 Hospital Contact"),
            option("lab_reports", "← Back to Lab Reports"),
        ],
    )


def lab_panel_booking() -> ChatReply:
    return ChatReply(
        message=(
            "📅 **Lab Test Booking**\n\n🔧 **Service Integration In Progress**\n\n"
            f"📞 **Direct Lab Contact:**\n• Lab Department: {settings.HOSPITAL_CONTACT_NUMBER}\n"
            "• Extension: 123 (Lab Services)\n\n"
            "🏥 **Walk-in Service:**\n• Visit hospital lab directly\n• Operating hours: 8 AM - 6 PM"
        ),
        options=[
            option("book_appointment", "👨‍⚕️ Book Doctor Consultation"),
            option("emergency", "📞 Hospital Contact"),
            option("lab_reports", "← Back to Lab Reports"),
        ],
    )


def refill_request() -> ChatReply:
    return ChatReply(
        message=(
            "🔄 **Prescription Refill Service**\n\n📋 **Feature In Development**\n\n"
            "Online prescription refills are being integrated with your pharmacy system. For immediate refills:\n\n"
            "🏥 **Contact Your Pharmacy:**\n• Call your regular pharmacy\n• Visit in person with prescription\n\n"
            "👨‍⚕️ **Contact Your Doctor:**\n• Request new prescription\n• Schedule follow-up appointment"
        ),
        options=[
            option("book_appointment", "👨‍⚕️ Book Doctor Appointment"),
            option("emergency", "🚨 Emergency Contact"),
            option("prescription", "← Back to Prescriptions"),
        ],
    )


STATIC_REPLIES: Dict[str, Callable[[], ChatReply]] = {
    "emergency": emergency,
    "health_tips": health_tips,
    "add_calendar": add_calendar,
    "set_additional_reminder": set_additional_reminder,
    "cancel_appointment": cancel_appointment,
    "confirm_cancel_appointment": confirm_cancel_appointment,
    "schedule_test": schedule_test,
    "refill_request": refill_request,
}

for _action in ("refill_paracetamol", "refill_vitamin", "refill_omeprazole",
                "order_family_para", "order_standard_para", "order_bulk_para"):
    STATIC_REPLIES[_action] = refill_request

for _action in ("book_basic_panel", "book_cardiac_panel", "book_bone_health", "book_diabetes_panel",
                "confirm_lab_tomorrow_7am", "confirm_lab_tomorrow_8am", "confirm_lab_tomorrow_10am"):
    STATIC_REPLIES[_action] = lab_panel_booking


# Specializations
SPECIALIZATION_ICONS = {
    "Cardiology": "🫀",
    "Neurology": "🧠",
    "Orthopedics": "🦴",
    "Ophthalmology": "👁️",
    "Pulmonology": "🫁",
    "Dermatology": "🩺",
    "ENT": "👂",
    "Gynecology": "🏥",
    "Gastroenterology": "🤢",
    "Oncology": "🎗️",
    "Urology": "🫘",
    "Psychiatry": "🧠",
    "General Medicine": "🩺",
    "Family Medicine": "👨‍👩‍👧‍👦",
    "Internal Medicine": "🔬",
}


def specialization_icon(specialization: str) -> str:
    return SPECIALIZATION_ICONS.get(specialization, "👨‍⚕️")


def specialization_slug(specialization: str) -> str:
    """``"General Medicine"`` -> ``"general_medicine"``."""
    return re.sub(r"\s+", "_", specialization.strip().lower())
