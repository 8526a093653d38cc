"""Tests for slugify and other core storage utilities."""

from backend import storage


def test_slugify_basic():
    assert storage.slugify("Dodge City Showdown") == "dodge-city-showdown"


def test_slugify_apostrophe():
    assert storage.slugify("Hell's Half Acre") == "hells-half-acre"


def test_slugify_unicode():
    assert storage.slugify("Café Münch") == "cafe-munch"


def test_slugify_empty():
    assert storage.slugify("") == "untitled"


def test_slugify_path_characters():
    assert storage.slugify("../etc/passwd") == "etc-passwd"


def test_init_creates_sessions_dir():
    assert storage.sessions_dir().is_dir()
    assert storage.sessions_dir().parent == storage.data_dir()
