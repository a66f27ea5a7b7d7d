"""Follow-up chat about a finished analysis.

One stateless turn: the caller resends the description, a condensed copy of
the analysis and the chat so far. The reply is free text; no schema is
enforced on it.
"""

import logging
import time

from homefix_ai.config import settings
from homefix_ai.errors import GenerationUnavailable, InvalidInput
from homefix_ai.generation import GenerationPort, TextPart
from homefix_ai.models import AnalysisContext, ChatRole
from homefix_ai.logging_config import log_event

logger = logging.getLogger("homefix_ai")

CHAT_FAILED_MESSAGE = "Failed to process chat message"

CHAT_SYSTEM_PROMPT = """You are a friendly home repair expert texting with a homeowner about a repair you already diagnosed.

Keep every reply SHORT: 1-2 sentences. Be direct and helpful.

Rules:
- Answer only the question asked.
- Do not repeat the analysis back.
- Skip long explanations unless asked for them.
- Be encouraging but brief.
- If something is dangerous, just say "Call a pro".

Good: "Yes, PVC cement works fine there - it's made for plastic pipe."
Bad: "Great question! PVC cement is a wonderful alternative that many DIYers prefer because..."
"""


def build_analysis_section(context: AnalysisContext):
    parts = []
    if context.problem_short:
        parts.append(f"Problem: {context.problem_short}")
    if context.summary:
        parts.append(f"Summary: {context.summary}")
    if context.materials:
        parts.append(f"Materials needed: {', '.join(context.materials)}")
    if context.tools:
        parts.append(f"Tools needed: {', '.join(context.tools)}")
    if context.steps:
        numbered = " ".join(f"{i}. {step}" for i, step in enumerate(context.steps, start=1))
        parts.append(f"Steps: {numbered}")
    if context.warnings:
        parts.append(f"Warnings: {'; '.join(context.warnings)}")
    return "\n".join(parts)


def build_chat_history_section(history):
    if not history:
        return ""
    lines = [
        f"{'User' if msg.role is ChatRole.USER else 'You'}: {msg.content}"
        for msg in history
    ]
    return "CONVERSATION SO FAR:\n" + "\n".join(lines) + "\n"


def build_chat_prompt(original_description, context, history, new_message):
    """Render the single chat prompt. Pure; same inputs give the same text."""
    return (
        f"{CHAT_SYSTEM_PROMPT}\n---\n\n"
        f'ORIGINAL PROBLEM:\n"{original_description.strip()}"\n\n'
        f"ANALYSIS YOU PROVIDED:\n{build_analysis_section(context)}\n\n"
        f"{build_chat_history_section(history)}\n"
        f'USER\'S NEW QUESTION:\n"{new_message.strip()}"\n\n'
        "Reply helpfully and conversationally:"
    )


class ChatResponder:
    """Answers one follow-up question through the generation port."""

    def __init__(self, generator: GenerationPort, max_tokens=None):
        self.generator = generator
        self.max_tokens = max_tokens or settings.CHAT_MAX_TOKENS

    def respond(self, original_description, analysis_context=None, history=(), new_message=""):
        if not new_message or not new_message.strip():
            raise InvalidInput("Message is required")
        if not original_description or not original_description.strip():
            raise InvalidInput("Original description is required")

        context = analysis_context or AnalysisContext()
        history = list(history or ())
        prompt = build_chat_prompt(original_description, context, history, new_message)

        log_event("chat_start", {
            "history_length": len(history),
            "message_preview": new_message.strip()[:50],
        })
        start_time = time.time()

        try:
            text = self.generator.generate([TextPart(prompt)], max_tokens=self.max_tokens)
        except Exception as e:
            logger.error(f"Chat generation failed: {type(e).__name__}: {e}")
            raise GenerationUnavailable(
                f"{type(e).__name__}: {e}", public_message=CHAT_FAILED_MESSAGE,
            ) from e

        reply = text.strip()
        log_event("chat_complete", {
            "reply_chars": len(reply),
            "duration_seconds": round(time.time() - start_time, 2),
        })
        return reply
