"""
Meeting transcript.

Deferred tasks ("schedule a follow-up", "send the summary") are only
acknowledged live; the transcript is how they reach whoever acts on them
after the call. Every turn is logged, and optionally appended to a JSON
lines file.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from tool_modules.aa_meet_bridge.src.session import Role

logger = logging.getLogger(__name__)

_ROLE_LABELS = {
    Role.USER: "📝 User",
    Role.ASSISTANT: "🗣️ Assistant",
    Role.SYSTEM: "📋 System",
}


class TranscriptLog:
    def __init__(self, path: Optional[Path] = None, assistant_name: str = "Assistant"):
        self.path = path
        self.assistant_name = assistant_name
        self.entries_written = 0

    def record(self, role: Role, text: str) -> None:
        label = _ROLE_LABELS[role]
        if role is Role.ASSISTANT:
            label = f"🗣️ {self.assistant_name}"
        logger.info(f'[TRANSCRIPT] {label}: "{text}"')

        if self.path is None:
            return

        entry = {"ts": datetime.now().isoformat(), "role": role.value, "text": text}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a") as f:
                f.write(json.dumps(entry) + "\n")
            self.entries_written += 1
        except OSError as e:
            logger.warning(f"[TRANSCRIPT] Could not append to {self.path}: {e}")
