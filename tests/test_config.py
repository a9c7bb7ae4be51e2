import pytest
from pydantic import ValidationError

from epghub.config import CustomSettings


def _settings(tmp_path, **overrides):
    overrides.setdefault("database_path", str(tmp_path / "db" / "epg.db"))
    overrides.setdefault("report_dir", str(tmp_path / "reports"))
    return CustomSettings(**overrides)


def test_defaults(tmp_path):
    settings = _settings(tmp_path)

    assert settings.restricted_feed_hosts == ["epgshare"]
    assert settings.restricted_max_concurrency == 2
    assert settings.restricted_stagger_ms == 250
    assert (tmp_path / "db").is_dir()
    assert (tmp_path / "reports").is_dir()


def test_epg_sources_accept_commas_and_newlines(tmp_path):
    settings = _settings(tmp_path, epg_sources="http://a.test/1.xml,\nhttps://b.test/2.xml, http://A.test/1.xml")
    assert settings.epg_sources == ["http://a.test/1.xml", "https://b.test/2.xml"]


def test_epg_sources_must_be_http(tmp_path):
    with pytest.raises(ValidationError):
        _settings(tmp_path, epg_sources="ftp://a.test/1.xml")


def test_restricted_hosts_from_csv(tmp_path):
    settings = _settings(tmp_path, restricted_feed_hosts="epgshare, ,iptv-org")
    assert settings.restricted_feed_hosts == ["epgshare", "iptv-org"]


@pytest.mark.parametrize(
    "field, value",
    [
        ("epg_fetch_cron", "every day"),
        ("log_level", "LOUD"),
        ("http_timeout_sec", 0),
        ("restricted_max_concurrency", 0),
        ("restricted_stagger_ms", -1),
    ],
)
def test_invalid_values_are_rejected(tmp_path, field, value):
    with pytest.raises(ValidationError):
        _settings(tmp_path, **{field: value})
