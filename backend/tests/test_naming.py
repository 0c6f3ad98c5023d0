"""Tests for naming template rendering."""

import pytest

import naming


def test_movie_default():
    tokens = naming.tokens_for({"media_type": "movie", "title": "Arrival", "year": 2016})
    assert naming.render(naming.TEMPLATE_MOVIE, tokens) == "Arrival (2016)/Arrival (2016)"


def test_tv_episode_padding():
    media = {"media_type": "tv", "title": "The Office", "year": 2005, "season": 3,
             "episode": 7, "episode_title": "Branch Wars"}
    path = naming.render(naming.template_type_for(media), naming.tokens_for(media))
    assert path == "The Office (2005)/Season 03/The Office - S03E07 - Branch Wars"


def test_tv_without_episode_title_drops_dangling_dash():
    media = {"media_type": "tv", "title": "Show", "year": 2020, "season": 1, "episode": 2}
    assert naming.render(naming.TEMPLATE_TV, naming.tokens_for(media)).endswith("/Show - S01E02")


def test_daily_layout():
    media = {"media_type": "tv", "series_type": "daily", "title": "Late Show", "year": 2024,
             "air_date": "2024-03-05", "episode_title": "Guests"}
    assert naming.template_type_for(media) == naming.TEMPLATE_DAILY
    path = naming.render(naming.TEMPLATE_DAILY, naming.tokens_for(media))
    assert path == "Late Show (2024)/Season 2024/Late Show - 2024-03-05 - Guests"


def test_missing_year_cleans_parentheses():
    tokens = naming.tokens_for({"media_type": "movie", "title": "Arrival"})
    assert naming.render(naming.TEMPLATE_MOVIE, tokens) == "Arrival/Arrival"


def test_invalid_characters_removed():
    tokens = naming.tokens_for({"media_type": "movie", "title": 'AC/DC: "Live"?', "year": 1992})
    assert naming.render(naming.TEMPLATE_MOVIE, tokens) == "ACDC Live (1992)/ACDC Live (1992)"


def test_trailing_dots_stripped():
    assert naming.sanitize_segment("Something Else... ") == "Something Else"


def test_quality_tokens():
    from quality.parser import parse_release

    templates = {naming.TEMPLATE_MOVIE: ("{Title}", "{Title} [{Resolution} {Source}]")}
    tokens = naming.tokens_for({"title": "Arrival"}, parse_release("Arrival.2016.2160p.BluRay-GRP"))
    assert naming.render(naming.TEMPLATE_MOVIE, tokens, templates=templates) == "Arrival/Arrival [2160p bluray]"


def test_unknown_template_type():
    with pytest.raises(ValueError):
        naming.render("podcast", {})
