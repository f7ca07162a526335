"""Tests for the question-answering assistant."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import assistant


def fake_client(content="Answer"):
    client = MagicMock()
    client.chat.completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
    )
    return client


class TestContext:
    def test_one_line_per_member(self, sample_members):
        lines = assistant.build_context(sample_members).splitlines()
        assert len(lines) == 3
        assert lines[1] == (
            "Aisha Karim (Phone: (347) 555-0199): Committed $2400, Paid $400, "
            "Remaining $2000, Freq: Monthly"
        )
        assert "(Phone: N/A)" in lines[2]

    def test_prompt_contains_question_and_data(self, sample_members):
        prompt = assistant.build_prompt("Who owes the most?", sample_members)
        assert "--- START DATA ---" in prompt
        assert "John Smith" in prompt
        assert 'User Question: "Who owes the most?"' in prompt


class TestAsk:
    def test_returns_model_text(self, sample_members):
        client = fake_client("Aisha has paid $400.")
        answer = assistant.ask("How much has Aisha paid?", sample_members, client=client, model="m1")
        assert answer == "Aisha has paid $400."
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "m1"
        assert kwargs["messages"][0]["role"] == "system"
        assert "How much has Aisha paid?" in kwargs["messages"][1]["content"]

    def test_missing_key(self, sample_members):
        assert assistant.ask("hi", sample_members) == assistant.NO_KEY_MESSAGE

    def test_error_becomes_text(self, sample_members):
        client = MagicMock()
        client.chat.completions.create.side_effect = RuntimeError("quota exceeded")
        assert assistant.ask("hi", sample_members, client=client) == "Error: quota exceeded"

    def test_empty_reply(self, sample_members):
        assert assistant.ask("hi", sample_members, client=fake_client(None)) == assistant.EMPTY_REPLY
