"""Built-in quality presets seeded on first start.

Built-ins are immutable: users duplicate them to customize. "Balanced" is
the initial default; changing the default never touches the built-in rows
other than their is_default flag.
"""

BUILT_IN_PRESETS: list[dict] = [
    {
        "name": "Best Quality",
        "media_type": "movie",
        "resolution": "2160p",
        "min_resolution": "1080p",
        "source": "remux",
        "hdr_formats": ["dv", "hdr10plus", "hdr10"],
        "codec": "any",
        "audio_formats": ["atmos", "truehd", "dtshd", "dtsx"],
        "preferred_edition": "any",
        "min_seeders": 3,
        "prefer_season_packs": False,
        "auto_upgrade": True,
    },
    {
        "name": "High Quality",
        "media_type": "movie",
        "resolution": "2160p",
        "min_resolution": "1080p",
        "source": "web",
        "hdr_formats": ["dv", "hdr10plus", "hdr10"],
        "codec": "any",
        "audio_formats": ["atmos", "ddplus", "truehd"],
        "preferred_edition": "any",
        "min_seeders": 3,
        "prefer_season_packs": False,
        "auto_upgrade": True,
    },
    {
        "name": "Balanced",
        "media_type": "movie",
        "resolution": "1080p",
        "min_resolution": "720p",
        "source": "web",
        "hdr_formats": [],
        "codec": "any",
        "audio_formats": ["ddplus", "dd", "aac"],
        "preferred_edition": "any",
        "min_seeders": 3,
        "prefer_season_packs": True,
        "auto_upgrade": True,
        "is_default": True,
    },
    {
        "name": "Storage Saver",
        "media_type": "movie",
        "resolution": "1080p",
        "min_resolution": "720p",
        "source": "web",
        "hdr_formats": [],
        "codec": "hevc",
        "audio_formats": ["ddplus", "aac"],
        "preferred_edition": "any",
        "min_seeders": 3,
        "prefer_season_packs": True,
        "auto_upgrade": False,
    },
    {
        "name": "Anime",
        "media_type": "anime",
        "resolution": "1080p",
        "min_resolution": "720p",
        "source": "bluray",
        "hdr_formats": [],
        "codec": "any",
        "audio_formats": ["flac", "aac", "opus"],
        "preferred_edition": "any",
        "min_seeders": 2,
        "prefer_season_packs": True,
        "auto_upgrade": True,
        "prefer_dual_audio": True,
        "preferred_language": "ja",
    },
]
