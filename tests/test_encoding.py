import pytest

from he_subtitles.encoding import detect_encoding, is_hebrew_encoding, to_utf8

HEBREW_SRT = (
    "1\n00:00:01,000 --> 00:00:03,500\nשלום, מה שלומך היום? אני מקווה שהכל בסדר אצלך.\n\n"
    "2\n00:00:04,000 --> 00:00:06,200\nבוא נלך הביתה לפני שיתחיל לרדת גשם חזק מאוד.\n\n"
    "3\n00:00:07,000 --> 00:00:09,800\nאמא שלי אמרה שהארוחה תהיה מוכנה בעוד חצי שעה.\n\n"
    "4\n00:00:10,000 --> 00:00:12,400\nאני לא יודע מה לעשות עכשיו, אולי כדאי שנחכה כאן.\n\n"
    "5\n00:00:13,000 --> 00:00:15,900\nהחברים שלנו מחכים לנו בבית הקפה ליד תחנת הרכבת.\n\n"
    "6\n00:00:16,000 --> 00:00:18,300\nזה היה יום ארוך ומעייף, אבל בסוף הכל הסתדר לטובה.\n"
)


def test_utf8_is_returned_unchanged():
    raw = HEBREW_SRT.encode("utf-8")
    assert to_utf8(raw) is raw
    assert to_utf8(to_utf8(raw)) == raw


def test_ascii_is_returned_unchanged():
    raw = b"1\n00:00:01,000 --> 00:00:02,000\nHello\n"
    assert to_utf8(raw) == raw


def test_empty_payload():
    assert to_utf8(b"") == b""


@pytest.mark.parametrize("codec", ["cp1255", "windows-1255", "iso-8859-8"])
def test_legacy_hebrew_code_pages_become_utf8(codec):
    raw = HEBREW_SRT.encode(codec)
    assert raw != HEBREW_SRT.encode("utf-8")
    assert is_hebrew_encoding(detect_encoding(raw))
    assert to_utf8(raw) == HEBREW_SRT.encode("utf-8")


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("WINDOWS-1255", True),
        ("ISO-8859-8", True),
        ("ISO-8859-8-I", True),
        ("CP1255", True),
        ("cp1252", False),
        ("utf-8", False),
        (None, False),
        ("not-a-codec", False),
    ],
)
def test_is_hebrew_encoding(name, expected):
    assert is_hebrew_encoding(name) is expected
