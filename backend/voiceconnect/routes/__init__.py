"""
VoiceConnect Backend: API Routes
==================================

Thin HTTP handlers. Each one extracts input, calls a service and wraps the
result in the `ApiResponse` envelope.

Route Inventory:
    - auth.py:           /api/auth            accounts, tokens, Google OAuth
    - users.py:          /api/users           profiles, search, storage
    - connections.py:    /api/connections     connection workflow
    - posts.py:          /api/posts           audio posts and their comments
    - comments.py:       /api/comments        comment edits, replies, likes
    - contact.py:        /api/contact         contact reveal
    - notifications.py:  /api/notifications   inbox
    - health.py:         /health, /api        health probe and API index
"""
