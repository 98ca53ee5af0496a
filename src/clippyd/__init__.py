"""
clippyd
Clipboard history daemon: watches the clipboard, keeps an encrypted, deduplicated
history, wipes the clipboard after a countdown and serves clients over a local
Unix socket.
"""

__version__ = "0.1.0"
