from datetime import date, datetime, timezone

from roomshare.models.models import Message
from roomshare.services.transcript import render_transcript, transcript_filename


def test_transcript_lines() -> None:
    messages = [
        Message(
            id="m1",
            room_id="r1",
            user_id="u1",
            display_name="alice",
            text="hi",
            created_at=datetime(2025, 8, 31, 9, 5, 7, tzinfo=timezone.utc),
        ),
        Message(
            id="m2",
            room_id="r1",
            user_id="u2",
            display_name="bob",
            text="yo",
            created_at=datetime(2025, 8, 31, 9, 6, 0, tzinfo=timezone.utc),
        ),
    ]
    assert render_transcript(messages) == "[09:05:07] alice: hi\n[09:06:00] bob: yo"
    assert render_transcript([]) == ""


def test_transcript_filename() -> None:
    assert transcript_filename("ABC123", date(2025, 8, 31)) == "hastext-ABC123-2025-08-31.txt"
