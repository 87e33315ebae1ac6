import pytest
from pydantic import ValidationError

from clipper.schemas.job import ClipRequest
from clipper.services.validation import (
    extract_video_id,
    normalize_time,
    seconds_to_time,
    time_slug,
    time_to_seconds,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("1:05", "00:01:05"),
        ("01:05", "00:01:05"),
        ("0:00:07", "00:00:07"),
        ("12:30:00", "12:30:00"),
    ],
)
def test_normalize_time(raw: str, expected: str) -> None:
    assert normalize_time(raw) == expected


def test_time_conversions() -> None:
    assert time_to_seconds("01:02:03") == 3723
    assert time_to_seconds("3:32") == 212
    assert seconds_to_time(3723) == "01:02:03"
    assert seconds_to_time(-5) == "00:00:00"
    assert time_slug("00:01:05") == "00-01-05"


@pytest.mark.parametrize(
    "url",
    [
        "https://www.youtube.com/watch?v=ABCDEFGHIJK",
        "https://youtu.be/ABCDEFGHIJK",
        "https://www.youtube.com/shorts/ABCDEFGHIJK",
        "https://www.youtube.com/embed/ABCDEFGHIJK?start=10",
        "youtube.com/watch?v=ABCDEFGHIJK&t=42",
    ],
)
def test_extract_video_id(url: str) -> None:
    assert extract_video_id(url) == "ABCDEFGHIJK"


def test_extract_video_id_rejects_other_hosts() -> None:
    assert extract_video_id("https://vimeo.com/123456") is None


def test_clip_request_normalizes_fields() -> None:
    request = ClipRequest.model_validate(
        {
            "url": "  https://youtu.be/ABCDEFGHIJK ",
            "start": "0:10",
            "end": "1:00",
            "formatId": "   ",
            "dryRun": True,
        }
    )
    assert request.url == "https://youtu.be/ABCDEFGHIJK"
    assert request.start == "00:00:10"
    assert request.end == "00:01:00"
    assert request.format_hint is None
    assert request.simulated is True


@pytest.mark.parametrize(
    "payload",
    [
        {"url": "https://example.com/watch?v=ABCDEFGHIJK", "start": "00:00", "end": "00:10"},
        {"url": "https://youtu.be/ABCDEFGHIJK", "start": "00:61", "end": "01:10"},
        {"url": "https://youtu.be/ABCDEFGHIJK", "start": "ten", "end": "01:10"},
        {"url": "https://youtu.be/ABCDEFGHIJK", "start": "00:30", "end": "00:30"},
        {"url": "https://youtu.be/ABCDEFGHIJK", "start": "00:40", "end": "00:30"},
    ],
)
def test_clip_request_rejects_invalid_input(payload: dict) -> None:
    with pytest.raises(ValidationError):
        ClipRequest.model_validate(payload)
