"""
Request dispatcher for the Health ERP chatbot.

``HealthChatbot.get_response`` is the single entry point for a chat turn:
it binds any caller-supplied identity, routes the selected option to a
static menu, the booking flow or a record action, and turns recoverable
errors into canned replies.
"""

from typing import Any, Dict, Optional

from . import menus
from .booking import FREE_TEXT_ESCAPES, BookingFlowController
from .errors import AuthenticationRequired, InvalidSelection, SessionExpired, UpstreamUnavailable
from .identity import SessionBridge
from .models import ChatReply, ConversationSession, HistoryEntry
from .observability import setup_logging, mask_pii
from .records import PatientRecords
from .session_manager import SessionStore
from .settings import settings

logger = setup_logging()

MAX_HISTORY = 50

# Recorded in history in place of the user's own words
FREE_TEXT_OPTION = "<free_text>"


class HealthChatbot:
    """Menu-driven chatbot over the healthcare API."""

    def __init__(
        self,
        api,
        sessions: SessionStore,
        booking: Optional[BookingFlowController] = None,
        max_session_age_hours: int = settings.EXTERNAL_SESSION_MAX_AGE_HOURS,
    ):
        self.api = api
        self.sessions = sessions
        self.booking = booking or BookingFlowController(api)
        self.records = PatientRecords(api)
        self.max_session_age_hours = max_session_age_hours

        self._actions = self.records.action_handlers()
        self._prefixed = self.records.prefix_handlers()

    def bridge_for(self, session: ConversationSession) -> SessionBridge:
        return SessionBridge(session, max_age_hours=self.max_session_age_hours)

    def get_response(
        self,
        user_id: str,
        selected_option: Optional[str] = "main",
        additional_data: Optional[Dict[str, Any]] = None,
        session_data: Optional[Dict[str, Any]] = None,
    ) -> ChatReply:
        """Process one chat turn for ``user_id`` and return the reply."""
        action = selected_option or "main"
        session = self.sessions.get_or_create(user_id)
        bridge = self.bridge_for(session)

        if session_data:
            if bridge.bind(session_data):
                logger.info("External session attached to chat turn", user_id=user_id)
            else:
                logger.warning("Ignoring malformed session data", user_id=user_id)

        try:
            if session.waiting_for_free_text and action not in FREE_TEXT_ESCAPES:
                logger.info("Free text captured as symptoms", user_id=user_id, text=mask_pii(action)[:50])
                self._remember(session, bridge, FREE_TEXT_OPTION)
                reply = self.booking.capture_free_text(session, action)
            else:
                self._remember(session, bridge, action)
                reply = menus.menu_reply(action) or self._dispatch(session, bridge, action, additional_data or {})

        except AuthenticationRequired:
            reply = menus.requires_authentication()
        except SessionExpired as e:
            logger.info("Patient session expired", user_id=user_id, reason=str(e))
            bridge.clear()
            reply = menus.session_expired()
        except InvalidSelection as e:
            logger.info("Option not recognized", user_id=user_id, reason=str(e))
            reply = menus.option_not_recognized()
        except UpstreamUnavailable as e:
            logger.warning("Healthcare API unavailable", user_id=user_id, action=action, error=str(e))
            reply = menus.service_unavailable()

        self.sessions.update(user_id, session)
        return reply

    def has_bound_identity(self, user_id: str) -> bool:
        """True when ``user_id`` currently has a valid bound identity."""
        session = self.sessions.get(user_id)
        return session is not None and self.bridge_for(session).is_valid()

    def _remember(self, session: ConversationSession, bridge: SessionBridge, action: str) -> None:
        session.history.append(HistoryEntry(option=action, has_session=bridge.is_valid()))
        del session.history[:-MAX_HISTORY]
        session.current_menu = action

    def _dispatch(
        self,
        session: ConversationSession,
        bridge: SessionBridge,
        action: str,
        additional_data: Dict[str, Any],
    ) -> ChatReply:
        if self.booking.handles(action):
            return self.booking.handle(session, bridge, action, additional_data)

        static = menus.STATIC_REPLIES.get(action)
        if static is not None:
            return static()

        if action == "find_hospital":
            return self.find_hospital()

        handler = self._actions.get(action)
        if handler is not None:
            return handler(bridge, additional_data)

        for prefix, prefixed_handler in self._prefixed:
            if action.startswith(prefix):
                return prefixed_handler(bridge, action[len(prefix):], additional_data)

        raise InvalidSelection(f"Unknown option: {action}")

    def find_hospital(self) -> ChatReply:
        try:
            hospitals = self.api.list_hospitals()
        except UpstreamUnavailable as e:
            logger.warning("Hospital list unavailable", error=str(e))
            return menus.hospitals_unavailable()

        if not hospitals:
            return menus.hospitals_unavailable()

        lines = [
            f"**{index}. {h.name}**\n📍 {h.location or 'Location not specified'}\n"
            f"📞 {h.phone or 'Contact: ' + settings.HOSPITAL_CONTACT_NUMBER}"
            for index, h in enumerate(hospitals[:3], 1)
        ]
        return ChatReply(
            message="🏥 **Nearest Emergency Hospitals:**\n\n" + "\n\n".join(lines),
            options=[
                menus.option("emergency", "← Back to Emergency Services"),
                menus.back_to_main(),
            ],
        )
