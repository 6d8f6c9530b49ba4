"""
Patient record actions: dashboard, appointments, prescriptions, lab tests,
medical reports and sharing them with doctors.

Every action here needs a bound patient; ``bridge.require_patient()`` raises
before any remote call is made when there is none.
"""

from typing import Any, Dict, List, Optional

from . import menus
from .errors import InvalidSelection
from .identity import SessionBridge
from .menus import back_to_main, option
from .models import ChatOption, ChatReply, ItemsResult
from .observability import setup_logging

logger = setup_logging()

SHAREABLE_TYPES = {"report": "Medical Report", "lab": "Lab Test"}
DEGRADED_NOTE = "\n\n⚠️ _Some records could not be loaded right now._"


def _degraded(result: ItemsResult) -> str:
    return DEGRADED_NOTE if result.failed else ""


def _first(item: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return value
    return default


class PatientRecords:
    """Replies built from the bound patient's records."""

    def __init__(self, api):
        self.api = api

    def prefix_handlers(self):
        return [
            ("download_prescription_", self.download_prescription),
            ("view_lab_test_", self.view_lab_test),
            ("share_lab_test_", self.share_lab_test),
            ("confirm_share_", self.confirm_lab_test_share),
            ("view_report_", self.view_report),
            ("share_item_", self.select_share_doctor),
            ("select_doctor_", self.share_item),
        ]

    def action_handlers(self):
        return {
            "profile": self.dashboard,
            "patient_dashboard": self.dashboard,
            "my_appointments": self.appointments,
            "view_appointments": self.appointments,
            "recent_visits": self.recent_visits,
            "medical_history": self.medical_history,
            "recent_reports": self.lab_tests,
            "pending_tests": self.pending_tests,
            "current_prescription": self.current_prescription,
            "prescription_history": self.prescription_history,
            "patient_reports": self.reports,
            "share_reports_menu": self.share_menu,
        }

    # Dashboard and history
    def dashboard(self, bridge: SessionBridge, additional_data: Optional[dict] = None) -> ChatReply:
        patient = bridge.require_patient()
        dashboard = self.api.get_patient_dashboard(bridge, patient.id)
        profile = dashboard["profile"]
        summary = dashboard["summary"]

        session_info = ""
        if bridge.session.has_external_session:
            session_info = f"\n\n🔒 **Session:** Connected via {bridge.session_type()} session"

        return ChatReply(
            message=(
                f"📊 **Your Health Dashboard**{session_info}\n\n👤 **Personal Information:**\n"
                f"• 👤 Name: {profile.name}\n• 🆔 ID: {profile.id}\n• 🎂 Age: {profile.age} years\n"
                f"• 🩸 Blood Group: {profile.blood_group}\n• 📞 Phone: {profile.phone}\n"
                f"• 📧 Email: {profile.email}\n• 📏 Height: {profile.height} cm\n• ⚖️ Weight: {profile.weight} kg\n\n"
                "📊 **Health Summary:**\n"
                f"• 📋 Medical Reports: {summary['reports_count']}\n"
                f"• 📅 Upcoming Appointments: {summary['upcoming_appointments']}\n"
                f"• 🏥 Recent Appointments: {len(dashboard['recent_appointments'])}"
            ),
            options=[
                option("book_appointment", "📅 Book New Appointment"),
                option("view_appointments", "📋 View All Appointments", "my_appointments"),
                option("view_reports", "🧪 View Lab Reports", "recent_reports"),
                back_to_main(),
            ],
        )

    def medical_history(self, bridge: SessionBridge, additional_data: Optional[dict] = None) -> ChatReply:
        patient = bridge.require_patient()
        dashboard = self.api.get_patient_dashboard(bridge, patient.id)
        profile = dashboard["profile"]

        return ChatReply(
            message=(
                "📜 **Medical History**\n\n👤 **Patient Information:**\n"
                f"• 🩸 Blood Group: {profile.blood_group or 'Not specified'}\n"
                f"• 🎂 Age: {profile.age} years\n"
                f"• ⚖️ Weight: {profile.weight or 'Not recorded'} kg\n"
                f"• 📏 Height: {profile.height or 'Not recorded'} cm\n\n"
                "📋 **Medical Records:**\n"
                f"• 📊 Total Reports: {dashboard['summary']['reports_count']}\n"
                f"• 📅 Recent Appointments: {len(dashboard['recent_appointments'])}"
            ),
            options=[
                option("recent_reports", "📋 View Lab Reports"),
                option("my_appointments", "📅 View Appointments"),
                option("medical_records", "← Back to Medical Records"),
                back_to_main(),
            ],
        )

    # Appointments
    def appointments(self, bridge: SessionBridge, additional_data: Optional[dict] = None) -> ChatReply:
        patient = bridge.require_patient()
        result = self.api.get_patient_appointments(bridge, patient.id)
        appointments = result.items

        if not appointments:
            return ChatReply(
                message=(
                    "📅 **Your Appointments**\n\n🔍 No appointments found.\n\n"
                    "Would you like to book a new appointment?" + _degraded(result)
                ),
                options=[option("book_appointment", "📅 Book New Appointment"), back_to_main()],
            )

        lines = [
            f"📋 **{index}. {apt.get('doctor_name')}** ({apt.get('specialization')})\n"
            f"📅 {apt.get('date_time')}\n🏥 {apt.get('hospital_name')}\n"
            f"🔸 Status: {apt.get('status')}\n💬 Symptoms: {apt.get('symptoms')}"
            for index, apt in enumerate(appointments[:5], 1)
        ]
        more = f"\n\n📝 *Showing first 5 of {len(appointments)} appointments*" if len(appointments) > 5 else ""

        return ChatReply(
            message=f"📅 **Your Appointments ({len(appointments)})**\n\n" + "\n\n".join(lines) + more,
            options=[option("book_appointment", "📅 Book New Appointment"), back_to_main()],
        )

    def recent_visits(self, bridge: SessionBridge, additional_data: Optional[dict] = None) -> ChatReply:
        patient = bridge.require_patient()
        result = self.api.get_patient_appointments(bridge, patient.id)

        if not result.items:
            return ChatReply(
                message=(
                    "🕐 **Recent Visits**\n\n🔍 No recent visits found.\n\n"
                    "Your medical visit history will appear here once you've had appointments "
                    "with healthcare providers." + _degraded(result)
                ),
                options=[
                    option("book_appointment", "📅 Book New Appointment"),
                    option("medical_records", "← Back to Medical Records"),
                ],
            )

        completed = [apt for apt in result.items if str(apt.get("status", "")).lower() == "completed"][:5]
        if not completed:
            return ChatReply(
                message="🕐 **Recent Visits**\n\n⏳ No completed visits found.\n\nYour recent completed appointments will appear here.",
                options=[
                    option("my_appointments", "📅 View All Appointments"),
                    option("medical_records", "← Back to Medical Records"),
                ],
            )

        lines = [
            f"📅 {apt.get('date_time')} - {apt.get('doctor_name')} ({apt.get('specialization')})\n"
            f"🏥 {apt.get('hospital_name')}\n💬 {apt.get('symptoms')}"
            for apt in completed
        ]
        return ChatReply(
            message="🕐 **Recent Visits**\n\n" + "\n\n".join(lines),
            options=[
                option("my_appointments", "📅 View All Appointments"),
                option("medical_records", "← Back to Medical Records"),
                back_to_main(),
            ],
        )

    # Lab tests
    def lab_tests(self, bridge: SessionBridge, additional_data: Optional[dict] = None) -> ChatReply:
        patient = bridge.require_patient()
        result = self.api.get_patient_lab_tests(bridge, patient.id)

        if not result.items:
            return ChatReply(
                message=(
                    "🧪 **Lab Test Reports**\n\n📋 **No Lab Tests Found**\n\n"
                    "You currently have no lab test reports on record." + _degraded(result)
                ),
                options=[
                    option("schedule_test", "📅 Schedule Lab Test"),
                    option("lab_reports", "← Back to Lab Reports"),
                    option("main", "🏠 Main Menu"),
                ],
            )

        recent = result.items[:5]
        lines = [
            f"**{index}. {test.get('test_name')}**\n"
            f"📅 Date: {_first(test, 'test_date', 'uploaded_at')}\n"
            f"🔬 Type: {test.get('test_type')}\n"
            f"📊 Results: {test.get('results') or 'Pending'}\n"
            f"📝 Notes: {test.get('notes') or 'None'}"
            for index, test in enumerate(recent, 1)
        ]
        options = [
            option(f"view_lab_test_{test.get('test_id')}", f"📊 View {test.get('test_name')}")
            for test in recent
        ]
        options += [option("lab_reports", "← Back to Lab Reports"), option("main", "🏠 Main Menu")]

        return ChatReply(message="🧪 **Recent Lab Test Reports**\n\n" + "\n\n".join(lines), options=options)

    def pending_tests(self, bridge: SessionBridge, additional_data: Optional[dict] = None) -> ChatReply:
        patient = bridge.require_patient()
        result = self.api.get_patient_lab_tests(bridge, patient.id)
        pending = [t for t in result.items if str(t.get("results") or "Pending").lower() == "pending"]

        if not pending:
            message = "⏳ **Pending Tests**\n\n✅ You have no lab tests awaiting results." + _degraded(result)
        else:
            lines = [
                f"• **{test.get('test_name')}** ({test.get('test_type')}) - {_first(test, 'test_date', 'uploaded_at')}"
                for test in pending
            ]
            message = "⏳ **Pending Tests**\n\n" + "\n".join(lines)

        return ChatReply(
            message=message,
            options=[option("recent_reports", "📊 Recent Reports"), option("lab_reports", "← Back to Lab Reports")],
        )

    def view_lab_test(self, bridge: SessionBridge, test_id: str, additional_data: Optional[dict] = None) -> ChatReply:
        patient = bridge.require_patient()
        result = self.api.get_patient_lab_tests(bridge, patient.id)
        test = next((t for t in result.items if str(t.get("test_id")) == test_id), None)

        if test is None:
            return ChatReply(
                message="❌ **Lab Test Not Found**\n\nThe requested lab test could not be found or you don't have access to it.",
                options=[option("recent_reports", "📊 View Lab Reports"), option("lab_reports", "← Back to Lab Reports")],
            )

        return ChatReply(
            message=(
                "🧪 **Lab Test Details**\n\n"
                f"**Test Name:** {test.get('test_name')}\n**Test Type:** {test.get('test_type')}\n"
                f"**Test Date:** {_first(test, 'test_date', 'uploaded_at')}\n"
                f"**Results:** {test.get('results') or 'Pending'}\n**Notes:** {test.get('notes') or 'No notes'}\n"
                f"**Uploaded:** {test.get('uploaded_at')}\n\n"
                f"🔗 **View File:** {self.api.lab_test_file_url(test_id)}"
            ),
            options=[
                option(f"share_lab_test_{test_id}", "👨‍⚕️ Share with Doctor"),
                option("recent_reports", "📊 Back to Lab Reports"),
                option("lab_reports", "← Main Lab Menu"),
            ],
        )

    def share_lab_test(self, bridge: SessionBridge, test_id: str, additional_data: Optional[dict] = None) -> ChatReply:
        bridge.require_patient()
        doctors = self.api.list_doctors()
        back = option(f"view_lab_test_{test_id}", "← Back to Test Details")

        if not doctors:
            return ChatReply(
                message="⚠️ **No Doctors Available**\n\nNo doctors are currently available to share the lab test with.",
                options=[back, option("recent_reports", "📊 Lab Reports")],
            )

        options = [
            option(f"confirm_share_{test_id}_{d.doctor_id}", f"👨‍⚕️ Share with {d.name}")
            for d in doctors[:3]
        ]
        options.append(back)
        return ChatReply(message="👨‍⚕️ **Share Lab Test**\n\nSelect a doctor to share your lab test with:", options=options)

    def confirm_lab_test_share(self, bridge: SessionBridge, rest: str, additional_data: Optional[dict] = None) -> ChatReply:
        test_id, _, doctor_id = rest.rpartition("_")
        if not test_id or not doctor_id:
            raise InvalidSelection(f"Malformed share action: confirm_share_{rest}")
        return self._share(bridge, "lab", test_id, doctor_id, additional_data)

    # Prescriptions
    def current_prescription(self, bridge: SessionBridge, additional_data: Optional[dict] = None) -> ChatReply:
        patient = bridge.require_patient()
        result = self.api.get_patient_prescriptions(bridge, patient.id)

        if not result.items:
            return ChatReply(
                message=(
                    "💊 **Current Prescriptions**\n\n📋 **No Active Prescriptions**\n\n"
                    "You currently have no active prescriptions on record." + _degraded(result)
                ),
                options=[
                    option("book_appointment", "📅 Book Doctor Consultation"),
                    option("prescription_history", "📚 Prescription History"),
                    option("prescription", "← Back to Prescriptions"),
                ],
            )

        latest = result.items[0]
        options: List[ChatOption] = []
        if latest.get("id") is not None:
            options.append(option(f"download_prescription_{latest['id']}", "📄 Download Prescription"))
        options += [option("prescription_history", "📚 Prescription History"), back_to_main()]

        return ChatReply(
            message=(
                "💊 **Current Prescription**\n\n"
                f"**Medicine:** {latest.get('medicine_name')}\n**Dosage:** {latest.get('dosage')}\n"
                f"**Duration:** {latest.get('duration')}\n**Notes:** {latest.get('notes')}\n"
                f"**Doctor:** {latest.get('doctor_name')}\n**Date:** {latest.get('created_at')}"
            ),
            options=options,
        )

    def prescription_history(self, bridge: SessionBridge, additional_data: Optional[dict] = None) -> ChatReply:
        patient = bridge.require_patient()
        result = self.api.get_patient_prescriptions(bridge, patient.id)

        if not result.items:
            return ChatReply(
                message=(
                    "📚 **Prescription History**\n\n📋 **No Prescription History**\n\n"
                    "You have no prescription history on record." + _degraded(result)
                ),
                options=[
                    option("book_appointment", "📅 Book Doctor Consultation"),
                    option("prescription", "← Back to Prescriptions"),
                ],
            )

        # ISO timestamps sort chronologically as strings
        ordered = sorted(result.items, key=lambda p: str(p.get("created_at") or ""), reverse=True)
        lines = [
            f"**{index}. {p.get('medicine_name')}** ({p.get('created_at')})\n"
            f"💊 {p.get('dosage')} - {p.get('duration')}\n"
            f"👨‍⚕️ {p.get('doctor_name')} ({p.get('specialization')})\n"
            f"📝 {p.get('notes') or 'No notes'}"
            for index, p in enumerate(ordered[:10], 1)
        ]
        more = f"\n\n**Showing latest 10 of {len(ordered)} prescriptions**" if len(ordered) > 10 else ""

        return ChatReply(
            message="📚 **Your Prescription History**\n\n" + "\n\n".join(lines) + more,
            options=[
                option("current_prescription", "💊 Current Active Prescriptions"),
                option("book_appointment", "📅 Book New Consultation"),
                option("prescription", "← Back to Prescriptions"),
            ],
        )

    def download_prescription(
        self, bridge: SessionBridge, prescription_id: str, additional_data: Optional[dict] = None
    ) -> ChatReply:
        bridge.require_patient()
        prescription = self.api.get_prescription_details(bridge, prescription_id)

        if not prescription:
            return ChatReply(
                message="❌ **Prescription Not Found**\n\nThe requested prescription could not be found or you don't have access to it.",
                options=[
                    option("current_prescription", "💊 View My Prescriptions"),
                    option("prescription", "← Back to Prescriptions"),
                ],
            )

        return ChatReply(
            message=(
                "📄 **Prescription Details**\n\n"
                f"**Prescription ID:** {prescription.get('id', prescription_id)}\n"
                f"**Medicine:** {prescription.get('medicine_name')}\n**Dosage:** {prescription.get('dosage')}\n"
                f"**Duration:** {prescription.get('duration')}\n**Doctor:** {prescription.get('doctor_name')}\n"
                f"**Notes:** {prescription.get('notes') or 'No notes'}\n\n"
                f"🔗 **Download Link:** \n{self.api.prescription_download_url(prescription_id)}"
            ),
            options=[
                option("current_prescription", "💊 Back to Prescriptions"),
                option("prescription_history", "📚 Prescription History"),
                option("prescription", "← Main Prescription Menu"),
            ],
        )

    # Medical reports and sharing
    def reports(self, bridge: SessionBridge, additional_data: Optional[dict] = None) -> ChatReply:
        patient = bridge.require_patient()
        result = self.api.get_patient_reports(bridge, patient.id)

        if not result.items:
            return ChatReply(
                message=(
                    "📄 **Medical Reports**\n\n📋 **No Reports Found**\n\n"
                    "You currently have no medical reports on record." + _degraded(result)
                ),
                options=[
                    option("schedule_test", "📅 Schedule Lab Test"),
                    option("book_appointment", "👨‍⚕️ Book Doctor Consultation"),
                    option("medical_records", "← Back to Medical Records"),
                ],
            )

        recent = result.items[:5]
        lines = [
            f"**{index}. {r.get('report_title')}**\n📅 Date: {r.get('upload_date')}\n"
            f"📝 Description: {r.get('description') or 'No description'}"
            for index, r in enumerate(recent, 1)
        ]
        options = [option(f"view_report_{r.get('report_id')}", f"📄 View {r.get('report_title')}") for r in recent]
        options += [
            option("share_reports_menu", "📤 Share Reports with Doctor"),
            option("medical_records", "← Back to Medical Records"),
        ]
        return ChatReply(message="📄 **Your Medical Reports**\n\n" + "\n\n".join(lines), options=options)

    def view_report(self, bridge: SessionBridge, report_id: str, additional_data: Optional[dict] = None) -> ChatReply:
        patient = bridge.require_patient()
        result = self.api.get_patient_reports(bridge, patient.id)
        report = next((r for r in result.items if str(r.get("report_id")) == report_id), None)

        if report is None:
            return ChatReply(
                message="❌ **Report Not Found**\n\nThe requested report could not be found or you don't have access to it.",
                options=[option("patient_reports", "📄 View My Reports"), option("medical_records", "← Back to Medical Records")],
            )

        return ChatReply(
            message=(
                f"📄 **{report.get('report_title')}**\n\n"
                f"📅 **Uploaded:** {report.get('upload_date')}\n"
                f"📝 **Description:** {report.get('description') or 'No description'}"
            ),
            options=[
                option(f"share_item_report_{report_id}", "📤 Share with Doctor"),
                option("patient_reports", "← Back to Reports"),
            ],
        )

    def share_menu(self, bridge: SessionBridge, additional_data: Optional[dict] = None) -> ChatReply:
        patient = bridge.require_patient()
        reports = self.api.get_patient_reports(bridge, patient.id)
        lab_tests = self.api.get_patient_lab_tests(bridge, patient.id)

        items = [
            ("report", _first(r, "report_id", "id"), _first(r, "report_title", "file_name", default="Medical Report"),
             _first(r, "upload_date", "created_at", default="Date not available"))
            for r in reports.items
        ] + [
            ("lab", _first(t, "test_id", "id"), _first(t, "test_name", "name", default="Lab Test"),
             _first(t, "test_date", "uploaded_at", default="Date not available"))
            for t in lab_tests.items
        ]
        items = [item for item in items if item[1] is not None][:8]

        if not items:
            return ChatReply(
                message=(
                    "📤 **Share Reports with Doctor**\n\n📋 **No Reports to Share**\n\n"
                    "You currently have no reports or lab tests to share."
                    + (DEGRADED_NOTE if reports.failed or lab_tests.failed else "")
                ),
                options=[
                    option("schedule_test", "📅 Schedule Lab Test"),
                    option("book_appointment", "👨‍⚕️ Book Doctor Consultation"),
                    option("patient_reports", "← Back to Reports"),
                ],
            )

        lines = [
            f"**{index}. {name}** ({SHAREABLE_TYPES[kind]})\n📅 Date: {when}"
            for index, (kind, _, name, when) in enumerate(items, 1)
        ]
        options = [option(f"share_item_{kind}_{item_id}", f"📤 Share {name}") for kind, item_id, name, _ in items]
        options += [
            option("patient_reports", "← Back to Reports"),
            option("recent_reports", "← Back to Lab Tests"),
        ]
        return ChatReply(
            message="📤 **Share Reports with Doctor**\n\nSelect a report or lab test to share:\n\n" + "\n\n".join(lines),
            options=options,
        )

    def select_share_doctor(self, bridge: SessionBridge, rest: str, additional_data: Optional[dict] = None) -> ChatReply:
        kind, _, item_id = rest.partition("_")
        if kind not in SHAREABLE_TYPES or not item_id:
            raise InvalidSelection(f"Malformed share action: share_item_{rest}")

        bridge.require_patient()
        doctors = self.api.list_doctors()
        if not doctors:
            return ChatReply(
                message="⚠️ **No Doctors Available**\n\nNo doctors are currently available to share with.",
                options=[
                    option("share_reports_menu", "← Back to Share Menu"),
                    option("patient_reports", "📄 Back to Reports"),
                ],
            )

        lines = [
            f"**{index}. {d.name}** - {d.specialty}\n🏥 {d.hospital_name or 'Available at clinic'}\n⭐ {d.rating or '4.5'}/5"
            for index, d in enumerate(doctors, 1)
        ]
        options = [
            option(f"select_doctor_{kind}_{item_id}_{d.doctor_id}", f"👨‍⚕️ Share with {d.name}") for d in doctors
        ]
        options.append(option("share_reports_menu", "← Back to Share Menu"))

        return ChatReply(
            message=f"👨‍⚕️ **Select Doctor to Share {SHAREABLE_TYPES[kind]}**\n\n**Available Doctors:**\n\n"
            + "\n\n".join(lines),
            options=options,
        )

    def share_item(self, bridge: SessionBridge, rest: str, additional_data: Optional[dict] = None) -> ChatReply:
        kind, _, remainder = rest.partition("_")
        item_id, _, doctor_id = remainder.rpartition("_")
        if kind not in SHAREABLE_TYPES or not item_id or not doctor_id:
            raise InvalidSelection(f"Malformed share action: select_doctor_{rest}")
        return self._share(bridge, kind, item_id, doctor_id, additional_data)

    def _share(
        self, bridge: SessionBridge, kind: str, item_id: str, doctor_id: str, additional_data: Optional[dict]
    ) -> ChatReply:
        patient = bridge.require_patient()
        doctor = next((d for d in self.api.list_doctors() if d.doctor_id == doctor_id), None)
        if doctor is None:
            return menus.doctor_not_found(f"share_item_{kind}_{item_id}", "🔄 Try Again")

        notes = str((additional_data or {}).get("notes") or "")
        if kind == "report":
            self.api.share_report(bridge, patient.id, item_id, [doctor_id], notes)
        else:
            self.api.share_lab_test(bridge, patient.id, item_id, doctor_id, notes)

        logger.info("Record shared", patient_id=patient.id, kind=kind, item_id=item_id, doctor_id=doctor_id)

        return ChatReply(
            message=(
                f"✅ **{SHAREABLE_TYPES[kind]} Shared Successfully!**\n\n"
                f"👨‍⚕️ **Shared with:** {doctor.name}\n🏥 **Specialty:** {doctor.specialty}\n"
                f"🏥 **Hospital:** {doctor.hospital_name or 'Healthcare Center'}\n\n"
                "📧 **What happens next:**\n• Doctor will receive notification\n"
                "• Report will appear in doctor's shared reports"
            ),
            options=[
                option("share_reports_menu", "📤 Share More Reports"),
                option("book_appointment", "📅 Book Appointment with Doctor"),
                option("patient_reports", "📄 Back to Reports"),
                option("main", "🏠 Main Menu"),
            ],
        )
