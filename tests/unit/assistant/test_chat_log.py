import asyncio
from datetime import datetime, timezone

import pytest

from src.assistant.chat_log import ChatLogger


@pytest.mark.asyncio
async def test_lines_go_to_a_dated_file(tmp_path):
    moment = datetime(2024, 3, 9, 14, 5, 7, 123000, tzinfo=timezone.utc)
    chat_logger = ChatLogger(tmp_path / "logs", clock=lambda: moment)

    await chat_logger.append("user", "Hello")
    await chat_logger.append("assistant", "Hi there!")

    path = tmp_path / "logs" / "chat-2024-03-09.log"
    assert path.read_text(encoding="utf-8").splitlines() == [
        "[2024-03-09T14:05:07.123Z] USER: Hello",
        "[2024-03-09T14:05:07.123Z] ASSISTANT: Hi there!",
    ]


@pytest.mark.asyncio
async def test_concurrent_appends_stay_intact(tmp_path):
    chat_logger = ChatLogger(tmp_path)

    await asyncio.gather(*(chat_logger.append("user", f"message {i} " + "x" * 200) for i in range(50)))

    lines = []
    for path in tmp_path.glob("chat-*.log"):
        lines.extend(path.read_text(encoding="utf-8").splitlines())
    assert len(lines) == 50
    assert all(line.endswith("x" * 200) and "] USER: message " in line for line in lines)


@pytest.mark.asyncio
async def test_write_failure_does_not_raise(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file")
    chat_logger = ChatLogger(blocker / "logs")

    await chat_logger.append("user", "Hello")
