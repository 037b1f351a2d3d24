"""Tests for timeline models."""

from chat_client.timeline.models import Citation, Draft, Message, PendingAttachment


def test_citations_deduplicated_by_url():
    msg = Message(role="assistant")
    msg.add_citations([Citation("https://a"), Citation("https://b")])
    msg.add_citations([Citation("https://a", title="again"), Citation("https://c")])
    assert [c.url for c in msg.citations] == ["https://a", "https://b", "https://c"]
    assert msg.citations[0].title == ""


def test_search_logs_merge_by_query():
    msg = Message(role="assistant")
    msg.add_search_log("q1", [Citation("https://a"), Citation("https://a")])
    msg.add_search_log("q2", [Citation("https://b")])
    msg.add_search_log("q1", [Citation("https://a"), Citation("https://c")])
    assert [log.query for log in msg.search_logs] == ["q1", "q2"]
    assert [r.url for r in msg.search_logs[0].results] == ["https://a", "https://c"]


def test_to_dict():
    data = Message(role="user", content="hi").to_dict()
    assert data["role"] == "user"
    assert data["citations"] == []


def test_draft_triviality():
    assert Draft().is_trivial()
    assert Draft(text="   ").is_trivial()
    assert not Draft(text="x").is_trivial()
    pending = PendingAttachment(id="a", file_name="f.txt", mime_type="text/plain", size=1)
    assert not Draft(attachments=[pending]).is_trivial()
