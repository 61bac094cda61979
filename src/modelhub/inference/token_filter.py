"""Prompt-token budget filter.

Token counts are a cheap estimate: the number of non-empty pieces left after
splitting on whitespace, brackets and common operators.
"""

from __future__ import annotations

import re

from modelhub.inference.models import ChatMessage

_TOKEN_SPLIT = re.compile(r"[\s{}\[\]()+\-=*/<>,;:.!&|\\]+")


def count_tokens(text: str) -> int:
    """Return the estimated token count of *text*."""
    return sum(1 for piece in _TOKEN_SPLIT.split(text) if piece)


def message_token_count(message: ChatMessage) -> int:
    """Estimate the tokens a message contributes to the prompt."""
    total = count_tokens(message.content or "")
    for call in message.tool_calls:
        total += count_tokens(call.arguments)
    for output in message.tool_outputs:
        total += count_tokens(output.raw_output)
    return total


def filter_messages_by_token_count(
    messages: list[ChatMessage], max_prompt_length: int
) -> list[ChatMessage]:
    """Drop the oldest messages until the rest fit in *max_prompt_length*.

    The newest message is always kept, even when it alone exceeds the budget.
    A non-positive budget disables filtering.
    """
    if max_prompt_length <= 0 or not messages:
        return list(messages)

    kept: list[ChatMessage] = []
    running = 0
    for message in reversed(messages):
        tokens = message_token_count(message)
        if kept and running + tokens > max_prompt_length:
            break
        kept.append(message)
        running += tokens

    kept.reverse()
    return kept
