from uuid import uuid4

from app.core.presence import PresenceTracker


def test_first_connection_brings_user_online():
    presence = PresenceTracker()
    user_id = uuid4()
    assert presence.on_connect(user_id) is True
    assert presence.on_connect(user_id) is False
    assert presence.is_online(user_id)
    assert presence.connection_count(user_id) == 2


def test_last_disconnect_takes_user_offline():
    presence = PresenceTracker()
    user_id = uuid4()
    presence.on_connect(user_id)
    presence.on_connect(user_id)
    assert presence.on_disconnect(user_id) is False
    assert presence.on_disconnect(user_id) is True
    assert not presence.is_online(user_id)
    assert presence.online_users() == []


def test_disconnect_of_unknown_user_is_noop():
    presence = PresenceTracker()
    user_id = uuid4()
    assert presence.on_disconnect(user_id) is False
    assert presence.connection_count(user_id) == 0
    # Never goes negative
    presence.on_connect(user_id)
    assert presence.connection_count(user_id) == 1


def test_clear():
    presence = PresenceTracker()
    presence.on_connect(uuid4())
    presence.clear()
    assert presence.online_users() == []
