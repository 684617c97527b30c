"""Realtime chat core.

Modules:
    - diff: word/char LCS diff for rendering corrections
    - presence: per-user set of open sockets, online/offline mirror
    - rooms: conversation-scoped broadcast groups
    - session: handshake authentication and join/leave rules
    - relay: send_message, typing and mark_read handling
    - gateway: the pieces wired together for the websocket router
"""
