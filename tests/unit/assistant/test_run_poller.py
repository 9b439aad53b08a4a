import pytest

from src.assistant.chat_log import ChatLogger
from src.assistant.client import RemoteMessage
from src.assistant.errors import NoResponseFound, RemoteTerminalFailure, RunTimeoutError
from src.assistant.run_poller import RunPoller, RunStatus


def _log_lines(log_dir):
    lines = []
    for path in sorted(log_dir.glob("chat-*.log")):
        lines.extend(path.read_text(encoding="utf-8").splitlines())
    return lines


@pytest.mark.asyncio
async def test_completed_run_returns_reply_and_logs_both_messages(tmp_path, fake_client_factory, recording_sleep):
    client = fake_client_factory(run_statuses=["queued", "in_progress", "completed"], reply_text="Hi there!")
    poller = RunPoller(client, ChatLogger(tmp_path), sleep=recording_sleep)

    reply = await poller.run("thread_1", "Hello", "asst_1")

    assert reply.text == "Hi there!"
    assert reply.attempts == 3
    assert client.count("retrieve_run") == 3
    assert recording_sleep.intervals == [1.0, 1.0]
    lines = _log_lines(tmp_path)
    assert len(lines) == 2
    assert lines[0].endswith("] USER: Hello")
    assert lines[1].endswith("] ASSISTANT: Hi there!")


@pytest.mark.asyncio
async def test_calls_are_strictly_ordered(fake_client_factory, recording_sleep):
    client = fake_client_factory(run_statuses=["completed"])
    poller = RunPoller(client, sleep=recording_sleep)

    reply = await poller.run("thread_1", "Hello", "asst_1")

    assert [name for name, _ in client.calls] == [
        "create_message",
        "create_run",
        "retrieve_run",
        "list_messages",
    ]
    assert client.calls[1] == ("create_run", ("thread_1", "asst_1"))
    assert recording_sleep.intervals == []
    assert reply.user_message_id is not None


@pytest.mark.asyncio
@pytest.mark.parametrize("completed_at", [1, 5, 30])
async def test_polling_stops_on_the_attempt_that_completes(fake_client_factory, recording_sleep, completed_at):
    statuses = ["in_progress"] * (completed_at - 1) + ["completed"]
    client = fake_client_factory(run_statuses=statuses)
    poller = RunPoller(client, max_attempts=30, sleep=recording_sleep)

    reply = await poller.run("thread_1", "Hello", "asst_1")

    assert reply.attempts == completed_at
    assert client.count("retrieve_run") == completed_at


@pytest.mark.asyncio
async def test_times_out_after_max_attempts(tmp_path, fake_client_factory, recording_sleep):
    client = fake_client_factory(run_statuses=["queued", "in_progress"])
    poller = RunPoller(client, ChatLogger(tmp_path), poll_interval=1.0, max_attempts=30, sleep=recording_sleep)

    with pytest.raises(RunTimeoutError) as excinfo:
        await poller.run("thread_1", "Hello", "asst_1")

    assert excinfo.value.status_code == 504
    assert excinfo.value.attempts == 30
    assert client.count("retrieve_run") == 30
    assert len(recording_sleep.intervals) == 29
    assert client.count("list_messages") == 0
    lines = _log_lines(tmp_path)
    assert len(lines) == 1
    assert "USER: Hello" in lines[0]


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["failed", "cancelled", "expired", "incomplete"])
async def test_remote_failure_stops_polling_immediately(tmp_path, fake_client_factory, recording_sleep, status):
    client = fake_client_factory(run_statuses=["queued", "in_progress", status], last_error="rate limit exceeded")
    poller = RunPoller(client, ChatLogger(tmp_path), max_attempts=30, sleep=recording_sleep)

    with pytest.raises(RemoteTerminalFailure) as excinfo:
        await poller.run("thread_1", "Hello", "asst_1")

    assert excinfo.value.status == status
    assert "rate limit exceeded" in excinfo.value.detail
    assert not isinstance(excinfo.value, RunTimeoutError)
    assert client.count("retrieve_run") == 3
    assert len(_log_lines(tmp_path)) == 1


@pytest.mark.asyncio
async def test_failure_on_last_attempt_is_not_a_timeout(fake_client_factory, recording_sleep):
    client = fake_client_factory(run_statuses=["in_progress"] * 4 + ["expired"])
    poller = RunPoller(client, max_attempts=5, sleep=recording_sleep)

    with pytest.raises(RemoteTerminalFailure) as excinfo:
        await poller.run("thread_1", "Hello", "asst_1")

    assert excinfo.value.status == "expired"


@pytest.mark.asyncio
async def test_unknown_status_keeps_polling(fake_client_factory, recording_sleep):
    client = fake_client_factory(run_statuses=["something_new", "requires_action", "completed"])
    poller = RunPoller(client, sleep=recording_sleep)

    reply = await poller.run("thread_1", "Hello", "asst_1")

    assert reply.attempts == 3


@pytest.mark.asyncio
async def test_completed_without_assistant_message(tmp_path, fake_client_factory, recording_sleep):
    client = fake_client_factory(run_statuses=["completed"], reply_text=None)
    poller = RunPoller(client, ChatLogger(tmp_path), sleep=recording_sleep)

    with pytest.raises(NoResponseFound) as excinfo:
        await poller.run("thread_1", "Hello", "asst_1")

    assert excinfo.value.kind == "no_response_found"
    assert len(_log_lines(tmp_path)) == 1


@pytest.mark.asyncio
async def test_reply_is_newest_assistant_message_of_this_run(fake_client_factory, recording_sleep):
    client = fake_client_factory(run_statuses=["in_progress", "completed"], reply_text="latest")
    client.messages["thread_1"].append(
        RemoteMessage(id="msg_old", role="assistant", text="from another run", run_id="run_other", created_at=5000)
    )
    poller = RunPoller(client, sleep=recording_sleep)

    reply = await poller.run("thread_1", "Hello", "asst_1")

    assert reply.text == "latest"
    assert reply.message_id != "msg_old"


@pytest.mark.asyncio
async def test_message_hook_runs_before_the_run_starts(fake_client_factory, recording_sleep):
    client = fake_client_factory()
    poller = RunPoller(client, sleep=recording_sleep)
    seen = []

    async def hook(message):
        seen.append((message.text, client.count("create_run")))

    await poller.run("thread_1", "Hello", "asst_1", on_message_posted=hook)

    assert seen == [("Hello", 0)]


def test_status_classification():
    assert RunStatus.FAILED.is_failure
    assert RunStatus.EXPIRED.is_failure
    assert not RunStatus.COMPLETED.is_failure
    assert not RunStatus.IN_PROGRESS.is_failure
    assert not RunStatus.TIMED_OUT.is_failure
    assert RunStatus.parse("bogus") is None


def test_max_attempts_must_be_positive(fake_client_factory):
    with pytest.raises(ValueError):
        RunPoller(fake_client_factory(), max_attempts=0)
