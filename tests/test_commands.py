from __future__ import annotations

from blocktranscoding.commands import MESSAGE_TIMEOUT_MS, CommandDispatcher
from blocktranscoding.models import NO_ACTION, Verdict

from conftest import make_snapshot


def test_stop_only(sink) -> None:
    sent = CommandDispatcher(sink).dispatch(make_snapshot(session_id="abc", user_id="u9"), Verdict.stop())
    assert sent is True
    assert sink.stops == [("abc", "abc", "u9")]
    assert sink.messages == []


def test_stop_and_notify_sends_message_after_stop(sink) -> None:
    CommandDispatcher(sink).dispatch(make_snapshot(session_id="abc"), Verdict.stop_and_notify("Too high"))
    assert sink.stops == [("abc", "abc", "u1")]
    assert sink.messages == [("abc", "", "Too high", MESSAGE_TIMEOUT_MS)]
    assert MESSAGE_TIMEOUT_MS == 2000


def test_no_action_sends_nothing(sink) -> None:
    assert CommandDispatcher(sink).dispatch(make_snapshot(), NO_ACTION) is False
    assert sink.stops == []


def test_stop_failure_is_reported_not_raised(sink) -> None:
    sink.fail_stop = True
    assert CommandDispatcher(sink).dispatch(make_snapshot(), Verdict.stop_and_notify("x")) is False
    assert sink.messages == []


def test_message_failure_still_counts_as_sent(sink) -> None:
    sink.fail_message = True
    assert CommandDispatcher(sink).dispatch(make_snapshot(), Verdict.stop_and_notify("x")) is True
    assert len(sink.stops) == 1
