"""Unit tests for the session registry."""
from datetime import datetime, timedelta

import pytest

from mcp_lite.mcp_session import MCPSession, MCPSessionManager
from mcp_lite.utils.errors import DeliveryError


@pytest.mark.asyncio
async def test_create_session_generates_unique_ids():
    """Test generated session ids are distinct."""
    manager = MCPSessionManager()

    ids = {manager.create_session().session_id for _ in range(20)}

    assert len(ids) == 20
    assert len(manager) == 20


@pytest.mark.asyncio
async def test_create_session_with_existing_id_replaces():
    """Test re-registering an id closes the old channel."""
    manager = MCPSessionManager()
    old = manager.create_session("client-1")

    new = manager.create_session("client-1")

    assert old.closed is True
    assert manager.get_session("client-1") is new
    assert len(manager) == 1


@pytest.mark.asyncio
async def test_queue_message_assigns_event_ids():
    """Test queued messages get increasing event ids."""
    session = MCPSession(session_id="s")

    first = session.queue_message("a")
    second = session.queue_message("b", event="endpoint")

    assert (first.id, second.id) == ("1", "2")
    assert second.event == "endpoint"
    assert session.message_queue.qsize() == 2


@pytest.mark.asyncio
async def test_closed_session_rejects_messages():
    """Test a closed channel raises DeliveryError and ends its stream."""
    session = MCPSession(session_id="s")
    session.queue_message("dropped")

    session.close()

    with pytest.raises(DeliveryError):
        session.queue_message("late")
    assert await session.message_queue.get() is None


@pytest.mark.asyncio
async def test_full_queue_raises():
    """Test a subscriber that stops reading makes delivery fail."""
    session = MCPSession(session_id="s")
    for i in range(session.message_queue.maxsize):
        session.queue_message(str(i))

    with pytest.raises(DeliveryError):
        session.queue_message("overflow")


@pytest.mark.asyncio
async def test_delete_session_only_removes_same_object():
    """Test deleting with a stale session object leaves a replacement alone."""
    manager = MCPSessionManager()
    old = manager.create_session("x")
    new = manager.create_session("x")

    assert manager.delete_session("x", old) is None
    assert "x" in manager
    assert manager.delete_session("x", new) is new
    assert "x" not in manager
    assert new.closed is True


@pytest.mark.asyncio
async def test_sole_session():
    """Test the single-session lookup only answers with exactly one session."""
    manager = MCPSessionManager()
    assert manager.sole_session() is None

    only = manager.create_session()
    assert manager.sole_session() is only

    manager.create_session()
    assert manager.sole_session() is None


@pytest.mark.asyncio
async def test_cleanup_expired_sessions():
    """Test inactive sessions are swept and active ones kept."""
    manager = MCPSessionManager(session_timeout_minutes=1)
    stale = manager.create_session("stale")
    manager.create_session("fresh")
    stale.last_activity = datetime.now() - timedelta(minutes=5)

    expired = await manager.cleanup_expired_sessions()

    assert expired == ["stale"]
    assert stale.closed is True
    assert list(manager.sessions) == ["fresh"]


@pytest.mark.asyncio
async def test_close_all():
    """Test shutdown closes every session."""
    manager = MCPSessionManager()
    sessions = [manager.create_session() for _ in range(3)]

    closed = manager.close_all()

    assert len(closed) == 3
    assert all(s.closed for s in sessions)
    assert len(manager) == 0


@pytest.mark.asyncio
async def test_background_cleanup_start_stop():
    """Test the sweep task can be started and stopped."""
    manager = MCPSessionManager(cleanup_interval=3600)

    manager.start_background_cleanup()
    assert manager._cleanup_task is not None
    manager.stop_background_cleanup()
    assert manager._cleanup_task is None
