"""
VoiceConnect Backend
=====================

Audio-post social network API: accounts, connections, contact reveal,
audio echoes stored in Google Drive, threaded audio comments and
notifications.
"""

__version__ = "1.0.0"
