"""
Helpers for summarizing conversation history.
"""

import inspect
from typing import List, Optional, Callable, Awaitable, Union

from .models import Message

# Summarizer callback: (ordered messages, formatted prompt) -> summary text. May be sync or async.
SummarizerFn = Union[
    Callable[[List[Message], str], str],
    Callable[[List[Message], str], Awaitable[str]],
]

SUMMARY_MARKER = 'Previous conversation summary:'
PREVIOUS_SUMMARY_PREFIX = 'Previous summary: '
CONVERSATION_PLACEHOLDER = '{conversation}'

DEFAULT_SUMMARY_PROMPT = """Summarize the following conversation concisely, preserving key information, decisions, and context that would be useful for continuing the conversation. Focus on:
- Main topics discussed
- Key decisions or conclusions
- Important user preferences or requirements
- Any pending questions or tasks

Conversation:
{conversation}

Summary:"""


def is_summary_message(message: Message) -> bool:
    """True for the system message a summarizing memory injects."""
    return message.role == 'system' and message.content.startswith(SUMMARY_MARKER)


def summary_message(summary: str) -> Message:
    return Message(role='system', content=f"{SUMMARY_MARKER}\n{summary}")


def previous_summary_message(summary: str) -> Message:
    """Synthetic system message carrying an existing summary into the next summarization."""
    return Message(role='system', content=f"{PREVIOUS_SUMMARY_PREFIX}{summary}")


def format_conversation_for_summary(messages: List[Message]) -> str:
    """
    Render messages as role-labelled lines for a summarization prompt.

    System messages are left out, except a carried-over previous summary,
    which is rendered as-is so the new summary can build on it.
    """
    lines = []
    for m in messages:
        if m.role == 'system':
            if m.content.startswith(PREVIOUS_SUMMARY_PREFIX):
                lines.append(m.content)
            continue
        lines.append(f"{m.role.upper()}: {m.content}")
    return '\n\n'.join(lines)


def build_summary_prompt(template: str, messages: List[Message]) -> str:
    return template.replace(CONVERSATION_PLACEHOLDER, format_conversation_for_summary(messages), 1)


def format_context_with_summary(messages: List[Message], summary: Optional[str]) -> List[Message]:
    """
    Insert the summary message after leading system messages.

    Stale summary messages are removed first so summaries never stack.
    """
    if not summary:
        return list(messages)

    filtered = [m for m in messages if not is_summary_message(m)]
    insert_idx = next((i for i, m in enumerate(filtered) if m.role != 'system'), len(filtered))
    return filtered[:insert_idx] + [summary_message(summary)] + filtered[insert_idx:]


async def call_summarizer(summarizer: SummarizerFn, messages: List[Message], prompt: str) -> str:
    """Invoke a sync or async summarizer."""
    result = summarizer(messages, prompt)
    if inspect.isawaitable(result):
        result = await result
    return result
