"""Release-name parser: detects quality attributes from indexer titles.

Pattern set follows common scene/P2P naming (Sonarr/Radarr conventions):
``Movie.Title.2023.2160p.UHD.BluRay.REMUX.DV.HDR10.TrueHD.Atmos.7.1-GROUP``
or anime style ``[Group] Show - 01 [1080p]``. Detection is best-effort;
unknown attributes stay empty and score nothing.
"""

import logging
import os
import re

from guessit import guessit

from quality.model import ReleaseQuality

logger = logging.getLogger(__name__)

# ─── Resolution ──────────────────────────────────────────────────────────────

_RESOLUTIONS = [
    ("2160p", re.compile(r"2160p|\b4k\b|\buhd\b", re.I)),
    ("1080p", re.compile(r"1080[pi]", re.I)),
    ("720p", re.compile(r"720p", re.I)),
    ("480p", re.compile(r"480p|576p|dvdrip|\bsdtv\b", re.I)),
]

# ─── Source (first match wins, most specific first) ──────────────────────────

_SOURCES = [
    ("remux", re.compile(r"\bremux\b", re.I)),
    ("bluray", re.compile(r"blu-?ray|\bbdrip\b|\bbrrip\b|\bbd\b|\bbdremux\b", re.I)),
    ("webrip", re.compile(r"\bwebrip\b|\bweb-rip\b", re.I)),
    ("webdl", re.compile(r"\bweb-?dl\b|\bwebdl\b|\bweb\b", re.I)),
    ("hdtv", re.compile(r"\b(?:hdtv|uhdtv|pdtv)\b", re.I)),
    ("dvd", re.compile(r"\bdvdrip\b|\bdvd\b", re.I)),
    ("cam", re.compile(r"\b(?:cam|hdcam|ts|hdts|telesync|tc|telecine)\b", re.I)),
]

# ─── HDR ─────────────────────────────────────────────────────────────────────

_DV = re.compile(r"\b(?:dv|dovi|dolby[.\s-]?vision)\b", re.I)
_HDR10_PLUS = re.compile(r"hdr10\+|hdr10plus|\bhdr10p\b", re.I)
_HDR10 = re.compile(r"\bhdr(?:10)?\b", re.I)
_HLG = re.compile(r"\bhlg\b", re.I)

# ─── Audio ───────────────────────────────────────────────────────────────────

_ATMOS = re.compile(r"\batmos\b", re.I)
_TRUEHD = re.compile(r"true-?hd", re.I)
_DTSX = re.compile(r"dts[-:]?x\b", re.I)
_DTSHD = re.compile(r"dts-?hd|dts-?ma", re.I)
_DTS = re.compile(r"\bdts\b", re.I)
_FLAC = re.compile(r"\bflac\b", re.I)
_PCM = re.compile(r"\bl?pcm\b", re.I)
_DDPLUS = re.compile(r"(?<![a-z])(?:dd\+|ddpa?|e-?ac-?3)", re.I)
_DD = re.compile(r"(?<![a-z])(?:dd|ac-?3)(?:\s*[257][.\s]?[01])?(?![a-z])", re.I)
_AAC = re.compile(r"\baac(?:[257][.\s]?[01])?\b", re.I)
_OPUS = re.compile(r"\bopus\b", re.I)

# ─── Codec ───────────────────────────────────────────────────────────────────

_CODECS = [
    ("hevc", re.compile(r"\b(?:hevc|x265|h[.\s]?265)\b", re.I)),
    ("av1", re.compile(r"\bav1\b", re.I)),
    ("avc", re.compile(r"\b(?:avc|x264|h[.\s]?264)\b", re.I)),
]

# ─── Editions ────────────────────────────────────────────────────────────────

_EDITIONS = [
    ("directors", re.compile(r"director'?s?[.\s-]?cut|\bdc\b", re.I)),
    ("extended", re.compile(r"\bextended\b", re.I)),
    ("theatrical", re.compile(r"\btheatrical\b", re.I)),
    ("unrated", re.compile(r"\bunrated\b", re.I)),
    ("imax", re.compile(r"\bimax\b", re.I)),
    ("criterion", re.compile(r"\bcriterion\b", re.I)),
    ("remastered", re.compile(r"\bremastered\b", re.I)),
]

# ─── Episode / pack / flags ──────────────────────────────────────────────────

_EPISODE = re.compile(r"\bS(\d{1,2})[.\s-]?E(\d{1,3})", re.I)
_SEASON_PACK = re.compile(r"\bS(\d{1,2})(?![\dE])", re.I)
_SEASON_WORD = re.compile(r"\bseason[.\s-]?(\d{1,2})\b(?!.*\bE\d)", re.I)
_ANIME_EPISODE = re.compile(r"^\[[^\]]+\]\s*.+?\s-\s(\d{1,4})(?:v\d)?\b")
_PROPER = re.compile(r"\bproper\b", re.I)
_REPACK = re.compile(r"\b(?:repack|rerip)\b", re.I)
_DUAL_AUDIO = re.compile(r"\bdual[.\s-]?audio\b|\bdual\b|\bmulti\b", re.I)
_DUBBED = re.compile(r"\bdubbed\b|\bdub\b", re.I)

_GROUP_SUFFIX = re.compile(r"-([A-Za-z0-9]+)(?:\[[^\]]*\])?(?:\.[A-Za-z0-9]{2,4})?$")
_GROUP_PREFIX = re.compile(r"^\[([^\]]+)\]")
_FILE_EXTENSIONS = {"mkv", "mp4", "avi", "m4v", "ts", "nzb", "torrent"}


_SEPARATORS = re.compile(r"[\s._\-]+")


def normalize_title(title: str) -> str:
    """Lowercase a release title and collapse separators to single spaces.

    ``Movie.2023.1080p-GRP`` and ``movie 2023 1080p grp`` normalize equal.
    """
    return _SEPARATORS.sub(" ", title.lower()).strip()


def _first(patterns, title: str) -> str:
    for label, pattern in patterns:
        if pattern.search(title):
            return label
    return ""


def parse_release_group(title: str) -> str:
    """Extract the release group (``-GROUP`` suffix or ``[Group]`` prefix)."""
    stripped = title.strip()
    match = _GROUP_PREFIX.match(stripped)
    if match:
        return match.group(1).strip()

    # Drop a trailing file extension before looking for -GROUP
    base, dot, ext = stripped.rpartition(".")
    if dot and ext.lower() in _FILE_EXTENSIONS:
        stripped = base

    match = _GROUP_SUFFIX.search(stripped)
    if match:
        group = match.group(1)
        # "WEB-DL" style tokens are not groups
        if group.lower() not in {"dl", "rip", "hd", "ray"}:
            return group
    return ""


def _parse_hdr(title: str) -> set[str]:
    formats: set[str] = set()
    if _DV.search(title):
        formats.add("dv")
    if _HDR10_PLUS.search(title):
        formats.add("hdr10plus")
    elif _HDR10.search(title):
        formats.add("hdr10")
    if _HLG.search(title):
        formats.add("hlg")
    return formats


def _parse_audio(title: str) -> set[str]:
    formats: set[str] = set()
    if _ATMOS.search(title):
        formats.add("atmos")
    if _TRUEHD.search(title):
        formats.add("truehd")
    if _DTSX.search(title):
        formats.add("dtsx")
    elif _DTSHD.search(title):
        formats.add("dtshd")
    elif _DTS.search(title):
        formats.add("dts")
    if _FLAC.search(title):
        formats.add("flac")
    if _PCM.search(title):
        formats.add("pcm")
    if _DDPLUS.search(title):
        formats.add("ddplus")
    elif _DD.search(title):
        formats.add("dd")
    if _AAC.search(title):
        formats.add("aac")
    if _OPUS.search(title):
        formats.add("opus")
    return formats


def parse_release(title: str) -> ReleaseQuality:
    """Detect quality attributes from a release title.

    Args:
        title: Raw indexer title or file name.

    Returns:
        ReleaseQuality with every attribute that could be detected.
    """
    quality = ReleaseQuality(
        resolution=_first(_RESOLUTIONS, title),
        source=_first(_SOURCES, title),
        codec=_first(_CODECS, title),
        hdr_formats=_parse_hdr(title),
        audio_formats=_parse_audio(title),
        edition=_first(_EDITIONS, title),
        release_group=parse_release_group(title),
        proper=bool(_PROPER.search(title)),
        repack=bool(_REPACK.search(title)),
        dual_audio=bool(_DUAL_AUDIO.search(title)),
        dubbed=bool(_DUBBED.search(title)),
    )

    episode = _EPISODE.search(title)
    if episode:
        quality.season = int(episode.group(1))
        quality.episode = int(episode.group(2))
    else:
        pack = _SEASON_PACK.search(title) or _SEASON_WORD.search(title)
        if pack:
            quality.season = int(pack.group(1))
            quality.season_pack = True
        else:
            anime = _ANIME_EPISODE.search(title)
            if anime:
                quality.episode = int(anime.group(1))

    return quality


def guess_file(file_path: str) -> dict:
    """Identify a video file on disk with guessit.

    Used at import time to pick the right episode out of a season pack.
    Only the file name is parsed; parent directories often carry the pack
    name and would mislead the episode match.

    Returns:
        Dict with keys: type, title, year, season, episode.
    """
    filename = os.path.basename(file_path)
    guess = guessit(filename, {"type": "episode"})
    if "episode" not in guess and "season" not in guess:
        guess = guessit(filename, {"type": "movie"})

    season = guess.get("season")
    if isinstance(season, list):
        season = season[0] if season else None
    episode = guess.get("episode")
    if isinstance(episode, list):
        episode = episode[0] if episode else None

    title = guess.get("title", "")
    if isinstance(title, list):
        title = title[0] if title else ""

    result = {
        "type": "movie" if guess.get("type") == "movie" else "episode",
        "title": str(title).strip(),
        "year": guess.get("year"),
        "season": season,
        "episode": episode,
    }
    logger.debug("Guessed %s -> %s", filename, result)
    return result


_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def _match_key(text: str) -> str:
    return _NON_ALNUM.sub(" ", text.lower()).strip()


def release_matches_media(title: str, media: dict, quality: ReleaseQuality | None = None) -> bool:
    """Whether a release title names a media item.

    The release must start with the item's title. A movie with a known year
    must carry that year right after the title. An episode must be the
    item's season and episode, or a pack of its season; a daily episode
    must carry its air date.
    """
    name = _match_key(media.get("title") or "")
    key = _match_key(title)
    if not name or not key.startswith(name + " "):
        return False
    rest = key[len(name) + 1:]

    if (media.get("media_type") or "movie") == "movie":
        year = media.get("year")
        return not year or rest.split(" ", 1)[0] == str(year)

    if media.get("air_date"):
        return _match_key(media["air_date"]) in rest
    quality = quality or parse_release(title)
    if quality.season is None or quality.season != media.get("season"):
        return False
    return quality.season_pack or quality.episode == media.get("episode")
