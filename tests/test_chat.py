"""Chat responder tests."""

import pytest
from unittest.mock import MagicMock

from homefix_ai.chat import ChatResponder, build_analysis_section, build_chat_prompt
from homefix_ai.errors import GenerationUnavailable, InvalidInput
from homefix_ai.generation import GenerationPort, TextPart
from homefix_ai.models import AnalysisContext, ChatMessage, ChatRole

CONTEXT = AnalysisContext(
    problem_short="Leaking P-trap",
    summary="Slip nut is loose.",
    materials=["Slip joint washer", "Plumber's tape"],
    tools=["Pliers"],
    steps=["Place bucket", "Tighten nut"],
    warnings=["Don't overtighten", "Water off first"],
)


@pytest.fixture
def generator():
    gen = MagicMock(spec=GenerationPort)
    gen.generate.return_value = "  Yes, hand-tight plus a quarter turn is plenty.\n"
    return gen


class TestChatPrompt:
    def test_analysis_section(self):
        section = build_analysis_section(CONTEXT)
        assert "Problem: Leaking P-trap" in section
        assert "Materials needed: Slip joint washer, Plumber's tape" in section
        assert "Steps: 1. Place bucket 2. Tighten nut" in section
        assert "Warnings: Don't overtighten; Water off first" in section

    def test_empty_context_sections_omitted(self):
        assert build_analysis_section(AnalysisContext()) == ""

    def test_history_roles(self):
        history = [
            ChatMessage(role=ChatRole.USER, content="Do I need tape?"),
            ChatMessage(role=ChatRole.ASSISTANT, content="Not on slip joints."),
        ]
        prompt = build_chat_prompt("Sink drips", CONTEXT, history, "How tight?")
        assert "CONVERSATION SO FAR:\nUser: Do I need tape?\nYou: Not on slip joints." in prompt
        assert prompt.index('"Sink drips"') < prompt.index("ANALYSIS YOU PROVIDED") < prompt.index('"How tight?"')

    def test_no_history_block_when_empty(self):
        prompt = build_chat_prompt("Sink drips", CONTEXT, [], "How tight?")
        assert "CONVERSATION SO FAR" not in prompt

    def test_deterministic(self):
        a = build_chat_prompt("Sink drips", CONTEXT, [], "How tight?")
        b = build_chat_prompt("Sink drips", CONTEXT, [], "How tight?")
        assert a == b


class TestChatResponder:
    def test_reply_trimmed(self, generator):
        reply = ChatResponder(generator=generator).respond("Sink drips", CONTEXT, [], "How tight?")
        assert reply == "Yes, hand-tight plus a quarter turn is plenty."

    def test_single_text_part_with_token_cap(self, generator):
        ChatResponder(generator=generator, max_tokens=120).respond("Sink drips", CONTEXT, [], "How tight?")
        args, kwargs = generator.generate.call_args
        parts = args[0]
        assert len(parts) == 1
        assert isinstance(parts[0], TextPart)
        assert kwargs["max_tokens"] == 120

    def test_missing_context_allowed(self, generator):
        reply = ChatResponder(generator=generator).respond("Sink drips", None, None, "How tight?")
        assert reply

    @pytest.mark.parametrize("message", ["", "   ", None])
    def test_blank_message(self, generator, message):
        with pytest.raises(InvalidInput) as excinfo:
            ChatResponder(generator=generator).respond("Sink drips", CONTEXT, [], message)
        assert excinfo.value.public_message == "Message is required"
        generator.generate.assert_not_called()

    def test_blank_description(self, generator):
        with pytest.raises(InvalidInput) as excinfo:
            ChatResponder(generator=generator).respond("", CONTEXT, [], "How tight?")
        assert excinfo.value.public_message == "Original description is required"

    def test_generation_failure(self, generator):
        generator.generate.side_effect = GenerationUnavailable("connection reset")
        with pytest.raises(GenerationUnavailable) as excinfo:
            ChatResponder(generator=generator).respond("Sink drips", CONTEXT, [], "How tight?")
        assert excinfo.value.public_message == "Failed to process chat message"
        assert generator.generate.call_count == 1
