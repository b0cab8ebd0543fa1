from __future__ import annotations

import itertools

from models import Sender, TranscriptEvent, TranscriptItem
from transcript import apply_event, compute_stats


def _feed(events: list[tuple[str, Sender, bool]], transcript: tuple = ()) -> tuple:
    ids = itertools.count(1)
    for text, sender, final in events:
        transcript = apply_event(
            transcript,
            TranscriptEvent(text, sender, final),
            clock_ms=lambda: 42,
            id_factory=lambda: str(next(ids)),
        )
    return transcript


def _view(transcript: tuple) -> list[tuple[Sender, str, bool]]:
    return [(item.sender, item.text, item.is_partial) for item in transcript]


def test_partials_coalesce_into_one_final_item() -> None:
    transcript = _feed([("a", Sender.USER, False), ("b", Sender.USER, False), ("c", Sender.USER, True)])
    assert _view(transcript) == [(Sender.USER, "abc", False)]
    assert transcript[0].id == "1"
    assert transcript[0].timestamp == 42


def test_empty_final_without_open_item_is_noop() -> None:
    assert _feed([("", Sender.MODEL, True)]) == ()

    closed = _feed([("done", Sender.MODEL, True)])
    assert _feed([("", Sender.MODEL, True)], closed) == closed


def test_empty_final_closes_open_turn() -> None:
    transcript = _feed([("hi", Sender.MODEL, False), ("", Sender.MODEL, True)])
    assert _view(transcript) == [(Sender.MODEL, "hi", False)]


def test_interleaved_senders_keep_creation_order() -> None:
    transcript = _feed(
        [
            ("u1", Sender.USER, False),
            ("m1", Sender.MODEL, False),
            ("u2", Sender.USER, True),
            ("m2", Sender.MODEL, True),
        ]
    )
    assert _view(transcript) == [(Sender.USER, "u1u2", False), (Sender.MODEL, "m1m2", False)]


def test_new_turn_after_final_creates_new_item() -> None:
    transcript = _feed(
        [
            ("first", Sender.USER, True),
            ("second", Sender.USER, False),
        ]
    )
    assert _view(transcript) == [(Sender.USER, "first", False), (Sender.USER, "second", True)]
    assert transcript[0].id != transcript[1].id


def test_finalized_item_behind_other_sender_is_not_reopened() -> None:
    transcript = _feed(
        [
            ("u1", Sender.USER, True),
            ("m1", Sender.MODEL, False),
            ("u2", Sender.USER, False),
        ]
    )
    assert _view(transcript) == [
        (Sender.USER, "u1", False),
        (Sender.MODEL, "m1", True),
        (Sender.USER, "u2", True),
    ]


def test_previous_value_is_never_mutated() -> None:
    before = _feed([("a", Sender.USER, False)])
    after = _feed([("b", Sender.USER, True)], before)
    assert _view(before) == [(Sender.USER, "a", True)]
    assert _view(after) == [(Sender.USER, "ab", False)]
    assert after[0].id == before[0].id


def test_compute_stats_counts_characters_per_sender() -> None:
    transcript = (
        TranscriptItem(id="1", text="hello", sender=Sender.USER, timestamp=0),
        TranscriptItem(id="2", text="hi there", sender=Sender.MODEL, timestamp=0, is_partial=True),
    )
    stats = compute_stats(transcript, elapsed_s=3.0)
    assert (stats.user_chars, stats.model_chars, stats.elapsed_s) == (5, 8, 3.0)
