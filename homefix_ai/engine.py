"""Diagnostic engine — one confidence-gated round per request.

No session is kept: the round is recomputed from the length of the Q&A
history the caller sends back, so any worker can serve any round.
"""

import sys
import time
import uuid
import logging

from homefix_ai.errors import GenerationUnavailable, InvalidInput, MalformedModelOutput
from homefix_ai.generation import GenerationPort
from homefix_ai.models import AnalysisResult, DiagnosticRequest
from homefix_ai.normalizer import DEFAULT_SUMMARY, parse_analysis
from homefix_ai.prompts import DiagnosticRound, build_generation_parts, diagnostic_round
from homefix_ai.logging_config import log_event

logger = logging.getLogger("homefix_ai")

# Raw model text kept in the log when it cannot be parsed.
MAX_LOGGED_OUTPUT_CHARS = 2000


# Closes out a final round that is still below the confidence threshold.
FINAL_ROUND_ADVICE = (
    "We couldn't pin this down from the details so far. "
    "We recommend having a professional inspect it in person."
)


def apply_round_constraints(result: AnalysisResult, state: DiagnosticRound) -> AnalysisResult:
    """The final round may not ask anything further.

    A final round that still needs more info ends with professional
    inspection advice in the summary instead of new questions.
    """
    if state is not DiagnosticRound.ROUND_3_FINAL:
        return result
    if not result.needs_more_info:
        return result.model_copy(update={"questions": []}) if result.questions else result

    summary = result.summary.strip()
    if summary and summary != DEFAULT_SUMMARY:
        summary = f"{summary} {FINAL_ROUND_ADVICE}"
    else:
        summary = FINAL_ROUND_ADVICE
    return result.model_copy(update={"questions": [], "summary": summary})


class DiagnosticEngine:
    """Runs a single diagnostic round against the generation port."""

    def __init__(self, generator: GenerationPort):
        self.generator = generator

    def diagnose(self, request: DiagnosticRequest, images=()) -> AnalysisResult:
        """Produce questions or a repair plan for this round.

        Args:
            request: The caller's full context, history included.
            images: Already-normalized images (objects with ``data`` and
                ``mime_type``).

        Raises:
            InvalidInput: blank description.
            GenerationUnavailable: the model call failed; not retried.
            MalformedModelOutput: the reply held no JSON object.
        """
        if not request.description or not request.description.strip():
            raise InvalidInput("Description is required")

        images = list(images)
        analysis_id = str(uuid.uuid4())
        history_length = len(request.conversation_history)
        state = diagnostic_round(history_length)
        start_time = time.time()

        log_event("analysis_start", {
            "analysis_id": analysis_id,
            "round": state.value,
            "history_length": history_length,
            "image_count": len(images),
            "has_home_profile": request.home_profile is not None,
        })

        parts = build_generation_parts(request, images)

        try:
            raw_text = self.generator.generate(parts)
        except GenerationUnavailable as e:
            self._log_failure(analysis_id, state, start_time, e)
            raise
        except Exception as e:
            # Adapters should translate their own errors; anything else is
            # still an upstream failure from the caller's point of view.
            self._log_failure(analysis_id, state, start_time, e)
            raise GenerationUnavailable(f"{type(e).__name__}: {e}") from e

        try:
            result = parse_analysis(raw_text)
        except MalformedModelOutput as e:
            log_event("malformed_model_output", {
                "analysis_id": analysis_id,
                "round": state.value,
                "raw_output": raw_text[:MAX_LOGGED_OUTPUT_CHARS],
            }, level=logging.WARNING)
            self._log_failure(analysis_id, state, start_time, e)
            raise

        result = apply_round_constraints(result, state)

        log_event("analysis_complete", {
            "analysis_id": analysis_id,
            "round": state.value,
            "confidence": result.confidence,
            "needs_more_info": result.needs_more_info,
            "question_count": len(result.questions),
            "duration_seconds": round(time.time() - start_time, 2),
        })
        return result

    def _log_failure(self, analysis_id, state, start_time, error):
        logger.error(f"Diagnostic engine error: {type(error).__name__}: {error}")
        log_event("analysis_failed", {
            "analysis_id": analysis_id,
            "round": state.value,
            "error_type": type(error).__name__,
            "duration_seconds": round(time.time() - start_time, 2),
        }, level=logging.ERROR, exc_info=sys.exc_info())
