from epghub.services.feed_discovery_service import (
    extract_epg_urls,
    join_urls,
    normalize_urls,
    parse_header_attributes,
    split_joined_urls,
)


def test_extract_quoted_comma_separated_urls():
    playlist = '#EXTM3U x-tvg-url="http://a/x.xml.gz, http://b/y.xml" tvg-shift=0\n#EXTINF:-1,Chan\nhttp://s/1\n'
    assert extract_epg_urls(playlist) == ["http://a/x.xml.gz", "http://b/y.xml"]


def test_extract_unquoted_value():
    assert extract_epg_urls("#EXTM3U url-tvg=http://a/guide.xml\n") == ["http://a/guide.xml"]


def test_extract_key_priority_order():
    playlist = '#EXTM3U tvg-url="http://c/3.xml" url-tvg="http://b/2.xml" x-tvg-url=""'
    assert extract_epg_urls(playlist) == ["http://b/2.xml"]


def test_extract_falls_back_to_numbered_keys():
    playlist = '#EXTM3U x-tvg-url2="http://z/2.xml"'
    assert extract_epg_urls(playlist) == ["http://z/2.xml"]


def test_extract_dedups_case_insensitively():
    playlist = '#EXTM3U x-tvg-url="http://A/x.xml,http://a/X.XML,http://b/y.xml"'
    assert extract_epg_urls(playlist) == ["http://A/x.xml", "http://b/y.xml"]


def test_extract_skips_leading_blank_lines_and_is_case_insensitive():
    playlist = "\n\n   \n#extm3u X-TVG-URL=\"http://a/x.xml\"\n"
    assert extract_epg_urls(playlist) == ["http://a/x.xml"]


def test_extract_requires_header_on_first_line():
    playlist = '#EXTINF:-1,Chan\n#EXTM3U x-tvg-url="http://a/x.xml"'
    assert extract_epg_urls(playlist) == []


def test_extract_empty_inputs():
    assert extract_epg_urls(None) == []
    assert extract_epg_urls("") == []
    assert extract_epg_urls("#EXTM3U") == []
    assert extract_epg_urls("#EXTM3U tvg-shift=1") == []


def test_parse_header_attributes_handles_bare_tokens_and_duplicates():
    attributes = parse_header_attributes('#EXTM3U bare Key="1" other = two key="3"')
    assert attributes == {"key": "3", "other": "two"}


def test_normalize_urls_strips_quotes_and_blanks():
    assert normalize_urls([' "http://a" ', "", "  ", "http://A"]) == ["http://a"]


def test_joined_url_round_trip():
    joined = join_urls(["http://a/1.xml", "http://b/2.xml", "http://a/1.xml"])
    assert joined == "http://a/1.xml,http://b/2.xml"
    assert split_joined_urls(joined) == ["http://a/1.xml", "http://b/2.xml"]


def test_split_joined_urls_accepts_newlines():
    assert split_joined_urls("http://a\r\nhttp://b\nhttp://c") == ["http://a", "http://b", "http://c"]
    assert split_joined_urls("  ") == []
