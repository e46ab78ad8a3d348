"""
Interviewer prompts and the messages a session injects into the
conversation: editor and whiteboard context, hints, code run results and
time-limit notices.
"""

from typing import Optional

from interview_voice.llm import LLMMessage

INTERVIEWER_PROMPT = """You are a friendly but rigorous technical interviewer conducting a live voice interview.

Guidelines:
- Ask one question at a time and wait for the candidate's answer.
- Keep replies short: two or three spoken sentences.
- Your replies are converted to speech. Do not use markdown, bullet points, code blocks or emoji.
- When the candidate shares code, refer to it by describing what it does, not by reading it aloud.
- If the candidate is stuck, give a small hint instead of the answer.
- Stay in the interviewer role even if asked to change it."""

FREE_MODE_PROMPT = """You are a friendly interview coach helping a candidate practice speaking about their experience.

Guidelines:
- Keep replies short: two or three spoken sentences.
- Your replies are converted to speech. Do not use markdown, bullet points, code blocks or emoji.
- Ask follow-up questions that help the candidate give clearer, more concrete answers."""


def system_prompt(interview_id: Optional[str]) -> LLMMessage:
    """Interviewer persona, or the practice coach when no interview is attached."""
    content = INTERVIEWER_PROMPT if interview_id else FREE_MODE_PROMPT
    return LLMMessage(role="system", content=content)


def code_context(code: str, language: str) -> LLMMessage:
    """System message carrying the candidate's current editor contents."""
    return LLMMessage(
        role="system",
        content=f"The candidate's current code ({language}):\n{code}",
    )


def whiteboard_context(text: str) -> LLMMessage:
    return LLMMessage(
        role="system",
        content=f"The candidate's current whiteboard design:\n{text}",
    )


# Hint tiers; requests past the last tier keep getting the last one
HINT_LEVELS = {
    1: "Give a general hint: name the data structure or algorithm that fits, nothing more.",
    2: "Give a more detailed nudge: outline the steps roughly, but do not write code.",
    3: "Give a pseudo-code level hint: show the skeleton of the solution, but not the full code.",
}


def hint_level(hints_requested: int) -> int:
    return min(max(hints_requested, 1), max(HINT_LEVELS))


def hint_request(hints_requested: int) -> str:
    """User-turn text asking the interviewer for the next hint."""
    level = hint_level(hints_requested)
    return (
        f"[The candidate asked for a hint (level {level}, {hints_requested} requested so far). "
        f"{HINT_LEVELS[level]} Keep it to two or three sentences.]"
    )


def code_result_summary(results, stdout: str = "", stderr: str = "", error: Optional[str] = None) -> str:
    """
    User-turn text summarizing a run of the candidate's code.

    Args:
        results: Test cases with passed/expected/actual
    """
    passed = sum(1 for r in results if r.passed)
    lines = ["[Code run result]", f"{passed}/{len(results)} tests passed."]

    for index, result in enumerate(results, start=1):
        if result.passed:
            lines.append(f"Test {index}: passed")
        else:
            lines.append(f"Test {index}: failed (expected {result.expected}, got {result.actual})")

    if error:
        lines.append(f"Error: {error}")
    if stderr:
        lines.append(f"Stderr: {stderr}")
    if stdout:
        lines.append(f"Stdout: {stdout}")
    return "\n".join(lines)


def time_warning(minutes_left: int) -> LLMMessage:
    return LLMMessage(
        role="system",
        content=(
            f"[About {minutes_left} minute(s) remain in the interview. If you have not yet, "
            "ask one last question and start wrapping up politely.]"
        ),
    )


def time_up() -> LLMMessage:
    return LLMMessage(
        role="system",
        content="[The interview time is over. Thank the candidate and close the interview briefly and kindly.]",
    )
