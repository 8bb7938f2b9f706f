"""
Klara Backend — API Routes Package
====================================

Route Inventory:
    - health.py:   GET /health
    - users.py:    /api/user/...      profile and provider keys
    - notes.py:    /api/notes/...     note CRUD, apply-suggestion, note chat
    - chat.py:     /api/chat/...      chat turns, sessions, update-note
    - memories.py: /api/memories/...  long-term memory management

Routes are thin: they resolve the caller, call one service method and
shape the response. Business rules and error mapping live below them.
"""
