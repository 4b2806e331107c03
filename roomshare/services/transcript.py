# roomshare/services/transcript.py

from datetime import date
from typing import Iterable

from roomshare.models.models import Message


def render_transcript(messages: Iterable[Message]) -> str:
    """One "[HH:MM:SS] name: text" line per message, oldest first."""
    return "\n".join(
        f"[{message.created_at.strftime('%H:%M:%S')}] {message.display_name}: {message.text}"
        for message in messages
    )


def transcript_filename(code: str, today: date) -> str:
    return f"hastext-{code}-{today.isoformat()}.txt"
