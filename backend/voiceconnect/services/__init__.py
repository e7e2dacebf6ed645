"""
VoiceConnect Backend: Services Layer
======================================

Business rules live here; routes only translate HTTP to service calls.
Every service is a module-level singleton taking the request's
AsyncSession as its first argument.

Service Inventory:
    - AuthService:          register, login, tokens, Google OAuth hand-off
    - UserService:          profiles, search, stats, storage settings
    - ConnectionService:    request / accept / reject / remove / block
    - ContactService:       contact reveal requests between connections
    - PostService:          audio posts, feed, trending, likes, listens
    - CommentService:       threaded audio comments and their likes
    - NotificationService:  in-process queue persisting notifications
    - AudioService:         upload validation and the Drive upload pipeline
    - GoogleDriveService:   Drive API calls behind retry + circuit breaker
    - TranscriptionService: pluggable speech-to-text (mock by default)
"""
