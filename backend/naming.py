"""Naming template renderer for imported files.

Templates use ``{Token}`` placeholders; numeric tokens accept a zero-pad
format such as ``{Season:00}``. ``/`` in a template separates path segments.
Every rendered segment is stripped of characters that are invalid on
common filesystems and of trailing dots and spaces.
"""

import re

TEMPLATE_MOVIE = "movie"
TEMPLATE_TV = "tv"
TEMPLATE_DAILY = "daily"
TEMPLATE_TYPES = (TEMPLATE_MOVIE, TEMPLATE_TV, TEMPLATE_DAILY)

# template_type -> (folder_template, file_template)
DEFAULT_TEMPLATES = {
    TEMPLATE_MOVIE: ("{Title} ({Year})", "{Title} ({Year})"),
    TEMPLATE_TV: (
        "{Title} ({Year})/Season {Season:00}",
        "{Title} - S{Season:00}E{Episode:00} - {EpisodeTitle}",
    ),
    TEMPLATE_DAILY: (
        "{Title} ({Year})/Season {Year}",
        "{Title} - {Air-Date} - {EpisodeTitle}",
    ),
}

_TOKEN = re.compile(r"\{([A-Za-z][A-Za-z-]*)(?::(0+))?\}")
_INVALID_CHARS = re.compile(r'[<>:"/\\|?*]')
_EMPTY_PARENS = re.compile(r"\(\s*\)|\[\s*\]")
_DANGLING_DASH = re.compile(r"(?:\s+-)+\s*$|^\s*(?:-\s+)+")
_SPACES = re.compile(r"\s{2,}")


def sanitize_segment(segment: str) -> str:
    """Remove invalid filename characters and trailing dots/spaces."""
    cleaned = _INVALID_CHARS.sub("", segment)
    cleaned = _EMPTY_PARENS.sub("", cleaned)
    cleaned = _SPACES.sub(" ", cleaned)
    cleaned = _DANGLING_DASH.sub("", cleaned)
    return cleaned.strip().rstrip(". ")


def _format_token(value, pad: str | None) -> str:
    if value is None or value == "":
        return ""
    if pad and isinstance(value, int):
        return str(value).zfill(len(pad))
    if pad and str(value).isdigit():
        return str(value).zfill(len(pad))
    return str(value)


def render_template(template: str, tokens: dict) -> str:
    """Render a template string into a relative path.

    Unknown or missing tokens render empty; the surrounding punctuation is
    cleaned up so "{Title} ({Year})" without a year gives "{Title}".
    """
    segments = []
    for raw in template.split("/"):
        rendered = _TOKEN.sub(
            lambda m: _INVALID_CHARS.sub("", _format_token(tokens.get(m.group(1)), m.group(2))),
            raw,
        )
        segment = sanitize_segment(rendered)
        if segment:
            segments.append(segment)
    return "/".join(segments)


def render(template_type: str, tokens: dict, templates: dict | None = None) -> str:
    """Render folder and file templates for a media layout.

    Args:
        template_type: "movie", "tv" or "daily".
        tokens: Token values keyed by name (Title, Year, Season, Episode,
            EpisodeTitle, Air-Date, Resolution, Source, Codec, Edition).
        templates: Optional override mapping in the DEFAULT_TEMPLATES shape.

    Returns:
        Relative path ``folder/.../file`` without an extension.

    Raises:
        ValueError: Unknown template type.
    """
    source = templates or DEFAULT_TEMPLATES
    if template_type not in source:
        raise ValueError(f"Unknown naming template type: {template_type}")
    folder_template, file_template = source[template_type]
    folder = render_template(folder_template, tokens)
    file_name = render_template(file_template, tokens)
    if not file_name:
        raise ValueError("Naming template rendered an empty file name")
    return f"{folder}/{file_name}" if folder else file_name


def template_type_for(media: dict) -> str:
    """Pick the template layout for a media_items row."""
    if media.get("media_type") == "movie":
        return TEMPLATE_MOVIE
    if media.get("series_type") == "daily":
        return TEMPLATE_DAILY
    return TEMPLATE_TV


def tokens_for(media: dict, quality=None) -> dict:
    """Build the token mapping for a media item and the imported quality."""
    tokens = {
        "Title": media.get("title") or "",
        "Year": media.get("year"),
        "Season": media.get("season"),
        "Episode": media.get("episode"),
        "EpisodeTitle": media.get("episode_title") or "",
        "Air-Date": media.get("air_date") or "",
    }
    if quality is not None:
        tokens.update({
            "Resolution": quality.resolution,
            "Source": quality.source,
            "Codec": quality.codec,
            "Edition": quality.edition,
        })
    return tokens
