"""
Meet Bridge Services

Daemon wrappers for the meeting bridge. The bridge runs as a child of a
supervising process (the browser automation that joined the meeting) and
talks to it over stdout signals and stdin JSON lines.

Services:
- bridge: Voice bridge daemon (transcribe, respond, speak)
"""

__version__ = "0.1.0"
