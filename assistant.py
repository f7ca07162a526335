"""
assistant.py
Natural-language questions over the member roster, answered by an
OpenAI-compatible chat model.
"""

from __future__ import annotations

import logging
from typing import Iterable

from openai import OpenAI

from models import Member

logger = logging.getLogger(__name__)

NO_KEY_MESSAGE = "API key not configured. Please set OPENAI_API_KEY."
EMPTY_REPLY = "I couldn't generate a response."

SYSTEM_PROMPT = """You are an assistant for a community contribution tracker.
Answer based ONLY on the member data provided.
If asked to draft a message, keep it polite, warm and professional.
If analyzing finances, provide exact numbers.
Be concise and helpful."""


def _money(amount: float) -> str:
    text = f"{amount:.2f}"
    return text[:-3] if text.endswith(".00") else text


def build_context(members: Iterable[Member]) -> str:
    lines = []
    for m in members:
        paid = m.total_paid
        lines.append(
            f"{m.name} (Phone: {m.phone or 'N/A'}): Committed ${_money(m.committed_amount)}, "
            f"Paid ${_money(paid)}, Remaining ${_money(m.committed_amount - paid)}, Freq: {m.frequency.value}"
        )
    return "\n".join(lines)


def build_prompt(question: str, members: Iterable[Member]) -> str:
    return (
        "Here is the current data of community members and their contributions:\n\n"
        "--- START DATA ---\n"
        f"{build_context(members)}\n"
        "--- END DATA ---\n\n"
        f'User Question: "{question}"'
    )


def ask(
    question: str,
    members: Iterable[Member],
    *,
    api_key: str | None = None,
    model: str = "gpt-4o-mini",
    client=None,
) -> str:
    """
    Returns the model's answer, or a readable error string. Never raises.
    `client` replaces the OpenAI client (anything with chat.completions.create).
    """
    if client is None:
        if not api_key:
            return NO_KEY_MESSAGE
        client = OpenAI(api_key=api_key)

    try:
        response = client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(question, members)},
            ],
        )
        text = response.choices[0].message.content
    except Exception as exc:
        logger.error("Assistant request failed: %s", exc)
        return f"Error: {str(exc) or 'Failed to connect to the assistant service'}"
    return text or EMPTY_REPLY
