"""
Klara Backend — Prompt Assembly Tests
=======================================

What we test:
    ✅ Context joining (order kept, empty → "")
    ✅ Note-update prompt layout, with and without a custom instruction
    ✅ Note text embedded verbatim, braces included
    ✅ Note-chat prompt carries title, content and request
"""

from app.schemas.memory import MemoryRecord
from app.services.prompts import (
    NOTE_UPDATE_INSTRUCTIONS,
    NOTE_UPDATE_TASK,
    build_context,
    build_note_chat_prompt,
    build_note_update_prompt,
)


class TestBuildContext:

    def test_empty(self):
        assert build_context([]) == ""

    def test_joins_in_rank_order(self):
        records = [
            MemoryRecord(id="m2", memory="Prefers short answers"),
            MemoryRecord(id="m1", memory="Works as a nurse"),
        ]
        assert build_context(records) == "Prefers short answers\nWorks as a nurse"


class TestNoteUpdatePrompt:

    def test_layout_without_custom_prompt(self):
        prompt = build_note_update_prompt("# Groceries\n- milk", "User needs eggs")

        assert prompt == (
            f"{NOTE_UPDATE_INSTRUCTIONS}\n\n"
            "CURRENT NOTE:\n# Groceries\n- milk\n\n"
            "CONVERSATION CONTEXT:\nUser needs eggs\n\n"
            f"{NOTE_UPDATE_TASK}"
        )

    def test_custom_prompt_goes_first(self):
        prompt = build_note_update_prompt("note", "ctx", custom_prompt="Write in German.")

        assert prompt.startswith("Write in German.\n\n" + NOTE_UPDATE_INSTRUCTIONS)

    def test_empty_custom_prompt_is_ignored(self):
        assert build_note_update_prompt("note", "ctx", "") == build_note_update_prompt("note", "ctx")

    def test_note_with_braces_is_verbatim(self):
        note = "def f():\n    return {'a': 1}  # {context}"

        prompt = build_note_update_prompt(note, "")

        assert f"CURRENT NOTE:\n{note}\n\n" in prompt
        assert "CONVERSATION CONTEXT:\n\n\n" in prompt

    def test_additive_rules_present(self):
        assert "append new items" in NOTE_UPDATE_INSTRUCTIONS
        assert "never delete existing content" in NOTE_UPDATE_INSTRUCTIONS


class TestNoteChatPrompt:

    def test_contains_note_and_request(self):
        prompt = build_note_chat_prompt("Trip", "Pack boots", "Make it a checklist")

        assert "Title: Trip\n" in prompt
        assert "Content: Pack boots\n" in prompt
        assert "User's request: Make it a checklist" in prompt
