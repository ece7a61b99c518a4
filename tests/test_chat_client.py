"""Tests for the Twitch chat transport helpers."""

import asyncio

import pytest

from twitch_sidekick.chat.client import (
    MAX_MESSAGE_LENGTH,
    ChatMessage,
    TwitchChat,
    TwitchChatClient,
    split_message,
)
from twitch_sidekick.config import TwitchConfig


class TestSplitMessage:
    def test_short_message_untouched(self):
        assert split_message("hello chat") == ["hello chat"]

    def test_splits_at_word_boundary(self):
        text = "word " * 150
        chunks = split_message(text.strip())
        assert len(chunks) == 2
        assert all(len(c) <= MAX_MESSAGE_LENGTH for c in chunks)
        assert all(not c.startswith(" ") and not c.endswith(" ") for c in chunks)
        assert " ".join(chunks) == text.strip()

    def test_hard_split_without_spaces(self):
        chunks = split_message("x" * 25, max_length=10)
        assert chunks == ["x" * 10, "x" * 10, "x" * 5]


def test_chat_message_str():
    msg = ChatMessage(channel="#test", sender="alice", content="hi", received_at=0.0)
    assert str(msg) == "<alice> hi"


class TestTwitchChat:
    @pytest.mark.asyncio
    async def test_connect_requires_token(self):
        chat = TwitchChat(TwitchConfig(username="sidekick", channels=["#test"]))
        with pytest.raises(RuntimeError):
            await chat.connect()

    @pytest.mark.asyncio
    async def test_send_while_disconnected_is_dropped(self):
        chat = TwitchChat(TwitchConfig(username="sidekick", channels=["#test"]))
        await chat.send("#test", "hello")
        assert chat.connected is False

    @pytest.mark.asyncio
    async def test_run_forever_requires_connection(self):
        chat = TwitchChat(TwitchConfig(username="sidekick"))
        with pytest.raises(RuntimeError):
            await chat.run_forever()

    @pytest.mark.asyncio
    async def test_send_before_ready_returns_immediately(self):
        """A client that is not (or no longer) joined drops instead of waiting."""
        chat = TwitchChat(TwitchConfig(username="sidekick", channels=["#test"]))
        chat._client = TwitchChatClient("sidekick", ["#test"])
        assert chat._client.ready is False

        await asyncio.wait_for(chat.send("#test", "hello"), timeout=1.0)
