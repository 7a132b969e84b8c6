"""Workspace name generation from a curated pool of city names."""

from __future__ import annotations

import random
from collections.abc import Iterable

CITY_NAMES: tuple[str, ...] = (
    # Africa
    "Casablanca", "Cairo", "Nairobi", "Lagos", "Marrakech", "Tunis", "Accra", "Addis",
    # Asia
    "Tokyo", "Seoul", "Bangkok", "Singapore", "Mumbai", "Delhi", "Shanghai", "Beijing",
    "Hanoi", "Manila", "Jakarta", "Taipei", "Osaka", "Kyoto", "Busan", "HongKong",
    "Bangalore", "Chennai", "Kolkata", "Karachi", "Dhaka", "Yangon", "Phnom",
    # Europe
    "London", "Paris", "Berlin", "Rome", "Madrid", "Barcelona", "Amsterdam", "Vienna",
    "Prague", "Budapest", "Warsaw", "Dublin", "Edinburgh", "Lisbon", "Athens",
    "Stockholm", "Oslo", "Copenhagen", "Helsinki", "Brussels", "Zurich", "Geneva",
    "Munich", "Milan", "Venice", "Florence", "Lyon", "Marseille", "Porto", "Seville",
    "Krakow", "Split", "Dubrovnik", "Reykjavik", "Tallinn", "Riga", "Vilnius",
    # North America
    "Austin", "Denver", "Seattle", "Portland", "Boston", "Chicago", "Phoenix",
    "Montreal", "Vancouver", "Toronto", "Miami", "Nashville", "Atlanta", "Dallas",
    "SanDiego", "Oakland", "Detroit", "Memphis", "NewOrleans", "SaltLake",
    # South America
    "Lima", "Santiago", "Bogota", "Quito", "Montevideo", "Caracas", "Medellin",
    "BuenosAires", "RioDeJaneiro", "SaoPaulo", "Cusco", "Cartagena",
    # Oceania
    "Sydney", "Melbourne", "Auckland", "Brisbane", "Perth", "Wellington", "Adelaide",
    # Middle East
    "Dubai", "Istanbul", "TelAviv", "Beirut", "Amman", "Doha", "Riyadh", "Muscat",
)


class CityNameGenerator:
    def __init__(self, names: Iterable[str] = CITY_NAMES, *, rng: random.Random | None = None) -> None:
        self.names: tuple[str, ...] = tuple(names)
        self._rng = rng or random.Random()

    def generate_unique_name(self, excluding: Iterable[str] = (), existing: Iterable[str] = ()) -> str:
        """Pick an unused name, relaxing the recently-used filter before giving up.

        Names already present on disk are never reused while any pool name is
        free of them; recently used names are only accepted when nothing else
        is left. Matching ignores case because on-disk entries are lowercase
        directory slugs.
        """
        existing_set = {item.casefold() for item in existing}
        excluded = {item.casefold() for item in excluding} | existing_set

        available = [name for name in self.names if name.casefold() not in excluded]
        if available:
            return self._rng.choice(available)

        not_on_disk = [name for name in self.names if name.casefold() not in existing_set]
        if not_on_disk:
            return self._rng.choice(not_on_disk)

        return f"Workspace{self._rng.randint(1000, 9999)}"
