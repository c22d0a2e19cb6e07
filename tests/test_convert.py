import pytest

from he_subtitles.convert import HEADER_BLOCK, ensure_header, looks_like_cues, to_caption_track

SRT = b"1\r\n00:00:01,000 --> 00:00:03,500\r\nFirst line\r\n\r\n2\r\n00:00:04,000 --> 00:00:06,250\r\nSecond line\r\n"


def test_srt_becomes_webvtt():
    out = to_caption_track(SRT).decode("utf-8")
    assert out.startswith("WEBVTT\n\n")
    assert "00:00:01.000 --> 00:00:03.500" in out
    assert "00:00:04.000 --> 00:00:06.250" in out
    assert "\r" not in out
    # cue counters are dropped
    assert "\n1\n" not in out and "\n2\n" not in out
    assert "First line" in out and "Second line" in out


def test_short_hour_field_is_padded():
    out = to_caption_track(b"1\n0:00:01,5 --> 0:00:02,000\nx\n").decode("utf-8")
    assert "00:00:01.500 --> 00:00:02.000" in out


def test_numeric_dialogue_line_is_kept():
    srt = b"1\n00:00:01,000 --> 00:00:02,000\n42\n\n2\n00:00:03,000 --> 00:00:04,000\nok\n"
    out = to_caption_track(srt).decode("utf-8")
    assert "\n42\n" in out


@pytest.mark.parametrize(
    "payload",
    [
        b"00:00:01.000 --> 00:00:02.000\nhi\n",
        b"webvtt\n\n00:00:01.000 --> 00:00:02.000\nhi\n",
        b"WEBVTT FILE\n\n00:00:01.000 --> 00:00:02.000\nhi\n",
        b"WEBVTT\n00:00:01.000 --> 00:00:02.000\nhi\n",
        b"\xef\xbb\xbfWEBVTT\r\n\r\n\r\n00:00:01.000 --> 00:00:02.000\r\nhi\r\n",
        b"WEBVTT - some title\nKind: captions\nLanguage: he\n\n00:00:01.000 --> 00:00:02.000\nhi\n",
    ],
)
def test_header_is_always_exact(payload):
    out = ensure_header(payload)
    assert out.startswith(HEADER_BLOCK.encode("utf-8"))
    assert out.count(b"WEBVTT") == 1
    assert out[len(HEADER_BLOCK):].startswith(b"00:00:01.000 --> 00:00:02.000\nhi")
    assert ensure_header(out) == out


def test_conversion_output_has_single_header():
    out = to_caption_track(b"WEBVTT\n\n1\n00:00:01,000 --> 00:00:02,000\nhi\n")
    assert out == b"WEBVTT\n\n00:00:01.000 --> 00:00:02.000\nhi\n"


def test_looks_like_cues():
    assert looks_like_cues("00:00:01,000 --> 00:00:02,000")
    assert not looks_like_cues("<html>not a subtitle</html>")
