from datetime import datetime, timedelta

from healthbot.models import AppointmentDraft, ExternalSessionBinding, PatientProfile
from healthbot.session_manager import SessionStore


def test_get_or_create_returns_same_session():
    store = SessionStore()

    first = store.get_or_create("u1")
    second = store.get_or_create("u1")

    assert first is second
    assert store.count() == 1


def test_get_unknown_user():
    assert SessionStore().get("nobody") is None


def test_idle_session_expires():
    store = SessionStore(session_timeout_minutes=30)
    session = store.get_or_create("u1")
    session.last_activity = datetime.utcnow() - timedelta(minutes=31)

    assert store.get("u1") is None
    assert store.count() == 0

    fresh = store.get_or_create("u1")
    assert fresh is not session
    assert fresh.draft is None


def test_update_refreshes_activity():
    store = SessionStore(session_timeout_minutes=30)
    session = store.get_or_create("u1")
    session.last_activity = datetime.utcnow() - timedelta(minutes=29)

    store.update("u1", session)

    assert datetime.utcnow() - session.last_activity < timedelta(seconds=5)
    assert store.get("u1") is session


def test_least_recently_used_is_evicted():
    store = SessionStore(max_entries=2)
    store.get_or_create("a")
    store.get_or_create("b")
    store.get("a")

    store.get_or_create("c")

    assert store.get("b") is None
    assert store.get("a") is not None
    assert store.get("c") is not None
    assert store.stats()["evicted_sessions"] == 1


def test_cleanup_expired():
    store = SessionStore(session_timeout_minutes=10)
    stale = store.get_or_create("stale")
    store.get_or_create("fresh")
    stale.last_activity = datetime.utcnow() - timedelta(hours=1)

    assert store.cleanup_expired() == 1
    assert store.count() == 1
    assert store.get("fresh") is not None


def test_delete():
    store = SessionStore()
    store.get_or_create("u1")

    assert store.delete("u1") is True
    assert store.delete("u1") is False


def test_stats():
    store = SessionStore(session_timeout_minutes=45, max_entries=50)
    with_draft = store.get_or_create("a")
    with_draft.draft = AppointmentDraft(doctor_id="1", doctor_name="Dr. Test")
    bound = store.get_or_create("b")
    bound.binding = ExternalSessionBinding(patient=PatientProfile(id="9"))
    store.get_or_create("c")

    stats = store.stats()

    assert stats["total_sessions"] == 3
    assert stats["active_sessions"] == 3
    assert stats["sessions_with_drafts"] == 1
    assert stats["sessions_with_identity"] == 1
    assert stats["max_entries"] == 50
    assert stats["timeout_minutes"] == 45
