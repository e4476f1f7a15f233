"""Built-in strategy catalog."""

from __future__ import annotations

from .loaders import parse_catalog

FULL_HD = {"name": "Full HD", "width": 1920, "height": 1080}

CDN_HOSTS = [
    "occ-0-1168-299.1.nflxso.net",
    "occ-0-3662-3647.1.nflxso.net",
    "occ-0-2706-2705.1.nflxso.net",
    "occ-0-2153-3934.1.nflxso.net",
    "occ-0-4857-395.1.nflxso.net",
]

ART_PATHS = [
    "6AYY37jfdO6hpXcMjf9Yu5cnmO0",
    "E8vDc_W8CLv7-yMQu8KMEC7Rrr8",
    "6gmvu2hxdfnQ55LZZjyzYR4kzGk",
    "BfYvu4-OEQ4e5FBDU0KdLJpBM_c",
]

ART_PREFIXES = ["AAAABQ", "AAAAFQ", "AAAABg", "AAAABY"]


def _tmdb_variant(token: str, width: int) -> dict:
    # Declared height assumes a 0.6 aspect ratio.
    return {"name": token, "token": token, "width": width, "height": round(width * 0.6)}


DEFAULT_CATALOG_DATA: dict = {
    "version": 1,
    "strategies": [
        {
            "name": "cdn",
            "source": "netflix_cdn",
            "label": "CDN",
            "hosts": CDN_HOSTS,
            "templates": [
                {"pattern": f"https://{{host}}/dnm/api/v6/{ART_PATHS[0]}/AAAABQ{{identifier}}", "type": "main"},
                {"pattern": f"https://{{host}}/dnm/api/v6/{ART_PATHS[1]}/AAAABQ{{identifier}}", "type": "hero"},
                {"pattern": f"https://{{host}}/dnm/api/v6/{ART_PATHS[2]}/AAAABQ{{identifier}}", "type": "variant"},
                {"pattern": "https://{host}/art/2/{identifier}", "type": "variant"},
                {"pattern": "https://{host}/art/full/{identifier}", "type": "variant"},
            ],
            "variants": [FULL_HD],
        },
        {
            "name": "tmdb",
            "source": "tmdb",
            "label": "TMDB",
            "templates": [
                {"pattern": "https://image.tmdb.org/t/p/{size}/{identifier}.jpg", "type": "alternative"},
            ],
            "variants": [
                _tmdb_variant("w500", 500),
                _tmdb_variant("w780", 780),
                _tmdb_variant("w1280", 1280),
                {"name": "Original", "token": "original"},
            ],
        },
        {
            "name": "omdb",
            "source": "omdb",
            "label": "OMDB",
            "templates": [
                {"pattern": "https://img.omdbapi.com/{size}/{identifier}.jpg", "type": "alternative"},
            ],
            "variants": [
                _tmdb_variant("300", 300),
                _tmdb_variant("500", 500),
            ],
        },
        {
            "name": "extracted",
            "source": "extracted",
            "label": "Extracted",
            "hosts": CDN_HOSTS[:2],
            "templates": [
                {"pattern": f"https://{{host}}/dnm/api/v6/{path}/{{size}}{{identifier}}.jpg", "type": "extracted"}
                for path in ART_PATHS
            ],
            "variants": [
                {"name": f"Prefix {prefix}", "token": prefix, **{k: FULL_HD[k] for k in ("width", "height")}}
                for prefix in ART_PREFIXES
            ],
        },
    ],
}

DEFAULT_CATALOG = parse_catalog(DEFAULT_CATALOG_DATA)
