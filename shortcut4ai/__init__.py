"""
Shortcut4AI - hotkey-driven transcription, grammar correction and assistant.

Binds global shortcuts to recording speech, transcribing it with a remote
Whisper endpoint, correcting selected text with a chat model, and holding
a short conversation with an assistant, delivering results by clipboard paste.
"""

__version__ = "0.1.0"
__author__ = "Shortcut4AI contributors"
__description__ = "Hotkey-driven transcription, grammar fixes and AI assistant"
