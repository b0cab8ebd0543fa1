"""Incremental transcript assembly.

Remote transcription arrives as per-speaker increments. ``apply_event`` folds
one ``(text, sender, is_final)`` event into an immutable tuple of
``TranscriptItem`` and returns the new tuple; the input is never modified.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import replace
from typing import Callable, Iterable, Optional

from models import Sender, SessionStats, TranscriptEvent, TranscriptItem

Transcript = tuple[TranscriptItem, ...]


def now_ms() -> int:
    return int(time.time() * 1000)


def new_item_id() -> str:
    return uuid.uuid4().hex


def apply_event(
    transcript: Iterable[TranscriptItem],
    event: TranscriptEvent,
    *,
    clock_ms: Callable[[], int] = now_ms,
    id_factory: Callable[[], str] = new_item_id,
) -> Transcript:
    items = tuple(transcript)
    index = _open_partial_index(items, event.sender)

    if index is not None:
        last = items[index]
        if event.is_final:
            # empty final only closes the turn
            updated = replace(last, text=last.text + event.text, is_partial=False)
        else:
            updated = replace(last, text=last.text + event.text)
        return items[:index] + (updated,) + items[index + 1 :]

    if not event.text and event.is_final:
        return items

    item = TranscriptItem(
        id=id_factory(),
        text=event.text,
        sender=event.sender,
        timestamp=clock_ms(),
        is_partial=not event.is_final,
    )
    return items + (item,)


def _open_partial_index(items: Transcript, sender: Sender) -> Optional[int]:
    """Index of ``sender``'s trailing item if it is still partial.

    Turns from the two speakers interleave, so the open item is looked up per
    sender rather than taken from the end of the list.
    """
    for index in range(len(items) - 1, -1, -1):
        if items[index].sender == sender:
            return index if items[index].is_partial else None
    return None


def compute_stats(transcript: Iterable[TranscriptItem], elapsed_s: float = 0.0) -> SessionStats:
    user_chars = 0
    model_chars = 0
    for item in transcript:
        if item.sender == Sender.USER:
            user_chars += len(item.text)
        else:
            model_chars += len(item.text)
    return SessionStats(user_chars=user_chars, model_chars=model_chars, elapsed_s=elapsed_s)
