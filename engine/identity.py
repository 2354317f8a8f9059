"""
Stable, human-memorable anomaly identifiers and investigation cache keys. Identifiers are derived from the query scope and the anomaly window so the same anomaly keeps its name across drill-in, zoom and reload.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Tuple

from engine.enums import Category

# Word tables are ordered; indices are load-bearing for id stability.
CAR_ADJECTIVES: Tuple[str, ...] = (
    "alpine", "azure", "blazing", "bold", "brilliant", "chrome", "classic",
    "coastal", "cosmic", "crimson", "crystal", "daring", "dazzling", "dusty",
    "electric", "elegant", "ember", "emerald", "fierce", "fiery", "flash",
    "forest", "frozen", "gentle", "gilded", "gleaming", "golden", "granite",
    "hidden", "highland", "icy", "ivory", "jade", "jet", "lunar", "marble",
    "midnight", "misty", "moonlit", "neon", "noble", "obsidian", "ocean",
    "onyx", "opulent", "pearl", "phantom", "polar", "pristine", "radiant",
    "raven", "royal", "ruby", "rustic", "sable", "sapphire", "scarlet",
    "shadow", "silent", "silver", "sleek", "smoky", "solar", "sonic",
    "speedy", "starlit", "steel", "storm", "sunset", "swift", "teal",
    "thunder", "titan", "turbo", "twilight", "velvet", "vintage", "violet",
    "wild", "winter", "zephyr",
)

CAR_COLORS_RED: Tuple[str, ...] = (
    "burgundy", "cardinal", "carmine", "cerise", "cherry", "claret", "coral",
    "cranberry", "crimson", "garnet", "magenta", "maroon", "raspberry", "rose",
    "ruby", "russet", "rust", "scarlet", "vermillion", "wine",
)

CAR_COLORS_ORANGE: Tuple[str, ...] = (
    "amber", "apricot", "bronze", "burnt", "butterscotch", "caramel", "carrot",
    "cinnamon", "copper", "flame", "ginger", "gold", "honey", "marigold",
    "melon", "ochre", "orange", "papaya", "peach", "pumpkin", "saffron",
    "sand", "sienna", "tan", "tangerine", "tawny", "topaz", "yellow",
)

CAR_COLORS_COOL: Tuple[str, ...] = (
    "aqua", "azure", "blue", "cerulean", "chartreuse", "cobalt", "cyan",
    "emerald", "forest", "green", "hunter", "indigo", "jade", "lagoon",
    "lime", "mint", "navy", "olive", "pacific", "pine", "sage", "seafoam",
    "spruce", "teal", "turquoise", "verdant", "viridian",
)

CAR_MODELS: Tuple[str, ...] = (
    "accord", "alpine", "beetle", "boxster", "bronco", "camaro", "camry",
    "cayenne", "challenger", "charger", "civic", "cobra", "continental",
    "corolla", "corvette", "defender", "elantra", "escort", "explorer",
    "firebird", "focus", "frontier", "fury", "galaxie", "giulia", "gto",
    "impala", "jetta", "lancer", "landcruiser", "maverick", "miata", "monte",
    "mustang", "navigator", "nova", "outback", "panda", "pantera", "passat",
    "pathfinder", "pinto", "porsche", "prelude", "prius", "quattro", "rabbit",
    "ranger", "raptor", "roadster", "safari", "scirocco", "senna", "shelby",
    "sierra", "skyline", "solara", "sonata", "spark", "spider", "stingray",
    "supra", "tacoma", "tempest", "tercel", "thunderbird", "tiguan", "torino",
    "tundra", "vantage", "viper", "wrangler", "zephyr",
)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def simple_hash(text: str) -> int:
    """32-bit polynomial (x31) string hash over UTF-16 code units.

    Matches the dashboard's hash bit for bit, so ids generated here and in
    the browser agree for the same inputs.
    """
    h = 0
    units = text.encode("utf-16-le")
    for i in range(0, len(units), 2):
        code = units[i] | (units[i + 1] << 8)
        h = (h << 5) - h + code
        h = ((h + 0x80000000) & 0xFFFFFFFF) - 0x80000000
    return abs(h)


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def round_to_minute(moment: datetime) -> str:
    """Round to the nearest minute and render as UTC ISO-8601 with milliseconds."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    rounded = moment.replace(second=0, microsecond=0)
    if moment.second >= 30:
        rounded += timedelta(minutes=1)
    return rounded.strftime("%Y-%m-%dT%H:%M:%S.000Z")


def color_palette(category: Category | str) -> Tuple[str, ...]:
    value = category.value if isinstance(category, Category) else str(category)
    if value == Category.red.value:
        return CAR_COLORS_RED
    if value == Category.yellow.value:
        return CAR_COLORS_ORANGE
    return CAR_COLORS_COOL


def generate_anomaly_id(
    time_filter: str,
    filters: str,
    start: datetime,
    end: datetime,
    category: Category | str = Category.green,
) -> str:
    h = simple_hash("|".join((time_filter, filters, round_to_minute(start), round_to_minute(end))))
    colors = color_palette(category)

    adjective = CAR_ADJECTIVES[h % len(CAR_ADJECTIVES)]
    color = colors[(h // len(CAR_ADJECTIVES)) % len(colors)]
    model = CAR_MODELS[(h // (len(CAR_ADJECTIVES) * len(colors))) % len(CAR_MODELS)]
    return f"{adjective}-{color}-{model}"


def generate_cache_key(time_filter: str, host_filter: str) -> str:
    # filters are not part of the key; drill-in reuse goes through cache eligibility
    return to_base36(simple_hash(f"{time_filter}|{host_filter}"))
