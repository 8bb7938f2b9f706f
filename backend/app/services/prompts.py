"""
Klara Backend — Prompt & Context Assembly
===========================================

Pure functions: no I/O, no logging. Everything that decides what text is
sent to a provider lives here so it can be tested by string comparison.
"""

from typing import Iterable, Optional

from app.schemas.memory import MemoryRecord


def build_context(records: Iterable[MemoryRecord]) -> str:
    """
    Joins memory texts with newlines, in the order mem0 ranked them.

    An empty iterable yields "" so callers can test truthiness to decide
    whether to send a context preamble at all.
    """
    return "\n".join(record.memory for record in records)


NOTE_UPDATE_INSTRUCTIONS = """You are a focused note-taking assistant that updates notes based on conversation context.

STRICT GUIDELINES:
- ONLY update the note with information directly relevant to the note's topic
- DO NOT add tangential information, personal opinions, or unrelated content
- DO NOT include conversational elements, greetings, or meta-commentary
- Preserve existing note structure and formatting exactly (headings, lists, code blocks)
- Maintain factual accuracy and professional tone

UPDATE RULES:
1. Review the current note and the conversation context
2. Identify ONLY facts, insights, or updates that directly relate to the note's topic
3. Add to the note; never delete existing content unless new information contradicts it
4. When the note contains a list, append new items to that list instead of rewriting it
5. Keep content concise and focused on the note's purpose"""

NOTE_UPDATE_TASK = (
    "TASK: Update the note by incorporating ONLY relevant information from the "
    "conversation. Return only the updated note content. Do not add any explanations, "
    "commentary, or off-topic content."
)


def build_note_update_prompt(
    current_note: str,
    context: str,
    custom_prompt: Optional[str] = None,
) -> str:
    """
    Prompt for an AI rewrite of a note.

    A caller-supplied instruction goes first, separated by a blank line,
    followed by the fixed instruction block. The note is embedded verbatim.
    """
    prompt = (
        f"{NOTE_UPDATE_INSTRUCTIONS}\n\n"
        f"CURRENT NOTE:\n{current_note}\n\n"
        f"CONVERSATION CONTEXT:\n{context}\n\n"
        f"{NOTE_UPDATE_TASK}"
    )
    if custom_prompt:
        prompt = f"{custom_prompt}\n\n{prompt}"
    return prompt


def build_note_chat_prompt(title: str, content: str, user_message: str) -> str:
    """Prompt for chatting about a single note (replies may be applied as suggestions)."""
    return (
        "You are an AI assistant helping with note-taking. Here's the current note:\n\n"
        f"Title: {title}\n"
        f"Content: {content}\n\n"
        f"User's request: {user_message}\n\n"
        "Please provide a helpful response. If the user is asking for improvements, "
        "suggestions, or modifications to the note content, provide your response in a "
        "way that could be directly applied to enhance the note. Focus on being concise "
        "and actionable. If you're suggesting content changes, provide the improved "
        "version that can be used to update the note."
    )
