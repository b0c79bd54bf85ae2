import pytest

from x402_near.path import path_is_match


@pytest.mark.parametrize(
    "pattern, path, expected",
    [
        ("/weather", "/weather", True),
        ("/weather", "/weather/", False),
        ("/Weather", "/weather", False),
        ("/premium/*", "/premium/report", True),
        ("/premium/*", "/premium/reports/2024", True),
        ("/premium/*", "/weather", False),
        ("/api/*/forecast", "/api/sanjose/forecast", True),
        ("/api/*/forecast", "/api/sanjose/history", False),
        ("/v?/weather", "/v2/weather", True),
        ("/v?/weather", "/v22/weather", False),
        ("*", "/anything", True),
        ("*", "", True),
        ("", "", True),
        ("", "/weather", False),
    ],
)
def test_exact_and_glob_patterns(pattern, path, expected):
    assert path_is_match(pattern, path) is expected


@pytest.mark.parametrize(
    "pattern, path, expected",
    [
        (r"regex:^/weather/\d+$", "/weather/42", True),
        (r"regex:^/weather/\d+$", "/weather/sanjose", False),
        ("regex:/premium", "/premium/report", True),
        # re.match anchors at the start
        ("regex:report", "/premium/report", False),
        (r"regex:^/(weather|forecast)$", "/forecast", True),
    ],
)
def test_regex_patterns(pattern, path, expected):
    assert path_is_match(pattern, path) is expected


def test_pattern_lists():
    patterns = ["/weather", "/premium/*", r"regex:^/v2/.*$"]
    assert path_is_match(patterns, "/weather")
    assert path_is_match(patterns, "/premium/report")
    assert path_is_match(patterns, "/v2/anything")
    assert not path_is_match(patterns, "/free")
    assert not path_is_match([], "/weather")


def test_invalid_pattern_types():
    assert path_is_match(None, "/weather") is False  # type: ignore
    assert path_is_match(42, "/weather") is False  # type: ignore
