from datetime import timedelta

from conftest import make_program
from epghub.services.fetch_types import EpgChannel, EpgProgram, FeedSource
from epghub.utils.data_merging import (
    create_program_key,
    dedup_programs,
    merge_channels,
    merge_programs,
    select_winning_sources,
)
from epghub.utils.normalization import (
    normalize_key,
    normalize_title,
    remove_country_suffix,
    strip_quality_tokens,
)


def _source(position, programs, channels=()):
    return FeedSource(
        url=f"http://feeds.test/{position}.xml",
        position=position,
        programs=list(programs),
        channels=list(channels),
    )


def _programs(channel_id, count, title="Show", offset_hours=0):
    return [make_program(channel_id, offset_hours + i, offset_hours + i + 1, f"{title} {i}") for i in range(count)]


class TestNormalization:
    def test_strip_quality_tokens(self):
        assert strip_quality_tokens("BBC One HD") == "BBC One"
        assert strip_quality_tokens("Sky  4K  Cinema fhd") == "Sky Cinema"
        assert strip_quality_tokens("HDTV") == "HDTV"
        assert strip_quality_tokens(None) == ""

    def test_normalize_key(self):
        assert normalize_key("BBC One HD") == "BBCONE"
        assert normalize_key("bbc-one.uk") == "BBCONEUK"
        assert normalize_key("  ") == ""

    def test_normalize_title(self):
        assert normalize_title("The  News!") == normalize_title("the news")
        assert normalize_title(None) == ""

    def test_remove_country_suffix(self):
        assert remove_country_suffix("BBC1.uk", ".") == "BBC1"
        assert remove_country_suffix("ZDF-de", "-") == "ZDF"
        assert remove_country_suffix("Channel.abc", ".") == "Channel.abc"
        assert remove_country_suffix(".uk", ".") == ".uk"
        assert remove_country_suffix("BBC1.u1", ".") == "BBC1.u1"
        assert remove_country_suffix("BBC1", ".") == "BBC1"


class TestDedup:
    def test_same_key_kept_once(self):
        first = make_program("BBC1", 0, 1, "The News")
        second = make_program("bbc1", 0, 1, "the  news")
        assert create_program_key(first) == create_program_key(second)
        assert dedup_programs([first, second]) == [first]

    def test_different_times_are_not_duplicates(self):
        first = make_program("BBC1", 0, 1, "News")
        shifted = EpgProgram(
            channel_id="BBC1",
            title="News",
            start_time=first.start_time + timedelta(seconds=1),
            stop_time=first.stop_time,
        )
        assert len(dedup_programs([first, shifted])) == 2

    def test_idempotent(self):
        programs = _programs("A", 5) + _programs("A", 5)
        once = dedup_programs(programs)
        assert len(once) == 5
        assert dedup_programs(once) == once


class TestWinnerSelection:
    def test_most_programs_wins(self):
        small = _source(0, _programs("X", 3, "small"))
        large = _source(1, _programs("X", 5, "large"))
        winners = select_winning_sources([small, large])
        assert winners["x"] is large

    def test_tie_goes_to_earlier_position(self):
        later = _source(1, _programs("X", 4, "later"))
        earlier = _source(0, _programs("X", 4, "earlier"))
        winners = select_winning_sources([later, earlier])
        assert winners["x"] is earlier

    def test_channel_ids_compared_case_insensitively(self):
        a = _source(0, _programs("bbc1", 2, "a"))
        b = _source(1, _programs("BBC1", 3, "b"))
        winners = select_winning_sources([a, b])
        assert list(winners) == ["bbc1"]
        assert winners["bbc1"] is b


class TestMergePrograms:
    def test_only_winner_programs_are_kept(self):
        a = _source(0, _programs("X", 50, "A"))
        b = _source(1, _programs("X", 30, "B") + _programs("Y", 20, "B"))

        merged = merge_programs([b, a])

        x_titles = {p.title for p in merged if p.channel_id == "X"}
        y_programs = [p for p in merged if p.channel_id == "Y"]
        assert len(x_titles) == 50
        assert all(title.startswith("A ") for title in x_titles)
        assert len(y_programs) == 20

    def test_no_channel_mixes_sources(self):
        a = _source(0, _programs("X", 2, "A") + _programs("Y", 1, "A"))
        b = _source(1, _programs("X", 1, "B") + _programs("Y", 3, "B"))

        merged = merge_programs([a, b])

        prefixes = {}
        for program in merged:
            prefixes.setdefault(program.channel_id, set()).add(program.title.split()[0])
        assert prefixes == {"X": {"A"}, "Y": {"B"}}

    def test_merged_output_is_deduplicated(self):
        programs = _programs("X", 3) + _programs("X", 3)
        merged = merge_programs([_source(0, programs)])
        assert len(merged) == 3

    def test_no_sources(self):
        assert merge_programs([]) == []
        assert merge_channels([]) == []


def test_merge_channels_uses_all_sources():
    a = _source(0, [], [EpgChannel("BBC1", ("BBC One",))])
    b = _source(1, [], [EpgChannel("bbc1", ("bbc one", "BBC 1")), EpgChannel("ITV", ("ITV1",))])

    channels = merge_channels([b, a])

    assert channels == [
        EpgChannel("BBC1", ("BBC One", "BBC 1")),
        EpgChannel("ITV", ("ITV1",)),
    ]
