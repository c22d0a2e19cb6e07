from he_subtitles.metadata import TitleInfo
from he_subtitles.queries import build_queries


def test_movie_queries():
    assert build_queries(TitleInfo("Inception", 2010)) == ["Inception 2010", "Inception", "Inception 1080p"]


def test_movie_without_year_drops_duplicate():
    assert build_queries(TitleInfo("Inception")) == ["Inception", "Inception 1080p"]


def test_series_queries_most_specific_first():
    queries = build_queries(TitleInfo("The Show", 2019), 1, 2)
    assert queries == [
        "The Show S01E02",
        "The Show S01E02 1080p",
        "The Show S01E02 WEB",
        "The Show S01E02 WEB-DL",
        "The Show S01E02 HDTV",
        "The Show S01E02 BluRay",
        "The Show S01 E02",
        "The Show 1 2",
        "The Show",
    ]
