"""Tests for release-name quality detection."""

from quality.parser import (
    guess_file,
    normalize_title,
    parse_release,
    parse_release_group,
    release_matches_media,
)


class TestParseRelease:
    def test_uhd_remux(self):
        q = parse_release("Dune.Part.Two.2024.2160p.UHD.BluRay.REMUX.DV.HDR10.TrueHD.Atmos.7.1-FraMeSToR")
        assert q.resolution == "2160p"
        assert q.source == "remux"
        assert q.hdr_formats == {"dv", "hdr10"}
        assert {"atmos", "truehd"} <= q.audio_formats
        assert q.release_group == "FraMeSToR"
        assert q.season is None and not q.season_pack

    def test_tv_episode_web(self):
        q = parse_release("The.Office.S03E07.720p.WEB-DL.DDP5.1.H.264-NTb")
        assert q.resolution == "720p"
        assert q.source == "webdl"
        assert q.codec == "avc"
        assert "ddplus" in q.audio_formats
        assert (q.season, q.episode) == (3, 7)
        assert not q.season_pack
        assert q.release_group == "NTb"

    def test_season_pack(self):
        q = parse_release("Breaking.Bad.S02.1080p.BluRay.x265-GRP")
        assert q.season == 2
        assert q.season_pack
        assert q.source == "bluray"
        assert q.codec == "hevc"

    def test_anime_style(self):
        q = parse_release("[SubsPlease] Frieren - 12 (1080p) [ABCD1234].mkv")
        assert q.release_group == "SubsPlease"
        assert q.episode == 12
        assert q.resolution == "1080p"

    def test_proper_and_repack(self):
        assert parse_release("Movie.2020.PROPER.1080p.WEB-DL-GRP").proper
        assert parse_release("Movie.2020.REPACK.1080p.WEB-DL-GRP").repack

    def test_unknown_attributes_stay_empty(self):
        q = parse_release("Some Home Video")
        assert q.resolution == ""
        assert q.source == ""
        assert q.hdr_formats == set()
        assert q.release_group == ""


class TestReleaseGroup:
    def test_suffix_group(self):
        assert parse_release_group("Movie.2020.1080p.BluRay.x264-SPARKS") == "SPARKS"

    def test_file_extension_ignored(self):
        assert parse_release_group("Movie.2020.1080p.BluRay.x264-SPARKS.mkv") == "SPARKS"

    def test_web_dl_is_not_a_group(self):
        assert parse_release_group("Movie.2020.1080p.WEB-DL") == ""


def test_normalize_title_collapses_separators():
    assert normalize_title("Movie.2023.1080p-GRP") == normalize_title("movie 2023 1080p grp")
    assert normalize_title("  A_B  C ") == "a b c"


def test_guess_file_episode():
    guess = guess_file("/downloads/pack/The.Office.S03E07.1080p.WEB-DL-GRP.mkv")
    assert guess["type"] == "episode"
    assert (guess["season"], guess["episode"]) == (3, 7)


def test_guess_file_movie():
    guess = guess_file("/downloads/Arrival.2016.1080p.BluRay.x264-SPARKS.mkv")
    assert guess["type"] == "movie"
    assert guess["year"] == 2016
    assert guess["title"] == "Arrival"


class TestReleaseMatchesMedia:
    movie = {"media_type": "movie", "title": "Spider-Man: No Way Home", "year": 2021}
    episode = {"media_type": "tv", "title": "The Office", "season": 3, "episode": 7}

    def test_movie_title_and_year(self):
        assert release_matches_media("Spider-Man.No.Way.Home.2021.1080p.WEB-DL-GRP", self.movie)
        assert not release_matches_media("Spider-Man.No.Way.Home.2022.1080p.WEB-DL-GRP", self.movie)

    def test_movie_title_prefix_is_not_enough(self):
        alien = {"media_type": "movie", "title": "Alien", "year": 1979}
        assert not release_matches_media("Aliens.1986.1080p.BluRay-GRP", alien)

    def test_episode_and_season_pack(self):
        assert release_matches_media("The.Office.US.S03E07.720p.WEB-DL-GRP", {**self.episode, "title": "The Office US"})
        assert release_matches_media("The.Office.S03E07.720p.WEB-DL-GRP", self.episode)
        assert release_matches_media("The.Office.S03.1080p.BluRay-GRP", self.episode)
        assert not release_matches_media("The.Office.S03E08.720p.WEB-DL-GRP", self.episode)
        assert not release_matches_media("The.Office.S04.1080p.BluRay-GRP", self.episode)

    def test_daily_episode_by_air_date(self):
        daily = {"media_type": "tv", "title": "Late Show", "air_date": "2024-03-05"}
        assert release_matches_media("Late.Show.2024.03.05.Guest.1080p.WEB-GRP", daily)
        assert not release_matches_media("Late.Show.2024.03.06.Guest.1080p.WEB-GRP", daily)
