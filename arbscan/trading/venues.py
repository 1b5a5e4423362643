from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .types import IncludeMode, SwapQuote

VENUE_ALIASES: dict[str, str] = {
    "whirlpool": "orca",
    "orca whirlpool": "orca",
    "orca": "orca",
    "raydium": "raydium",
    "raydium clmm": "raydium",
    "raydium cpmm": "raydium",
    "meteora": "meteora",
    "meteora dlmm": "meteora",
    "openbook": "openbook",
    "openbook v2": "openbook",
    "openbookv2": "openbook",
    "pancakeswap": "pancakeswap",
    "lifinity v2": "lifinity",
    "lifinityv2": "lifinity",
    "aquifer": "aquifer",
    "humidifi": "humidifi",
    "tessera": "tessera",
    "tessera v": "tessera",
    "tesserav": "tessera",
    "solfi": "solfi",
    "solfi v": "solfi",
    "solfi v1": "solfi",
    "solfi v2": "solfi",
    "solfi v3": "solfi",
    "pump": "pump",
}


def normalize_venue(label: str | None) -> str:
    if not label:
        return ""
    key = str(label).strip().lower()
    return VENUE_ALIASES.get(key, key)


def normalize_venues(labels: Iterable[str]) -> tuple[str, ...]:
    normalized: list[str] = []
    for label in labels:
        canonical = normalize_venue(label)
        if canonical and canonical not in normalized:
            normalized.append(canonical)
    return tuple(normalized)


def normalize_include_mode(value: str | None) -> IncludeMode:
    return "any" if (value or "").strip().lower() == "any" else "all"


@dataclass(slots=True, frozen=True)
class RouteFilterPolicy:
    include: frozenset[str] = frozenset()
    include_mode: IncludeMode = "all"
    exclude: frozenset[str] = frozenset()

    @classmethod
    def from_labels(
        cls,
        *,
        include: Iterable[str] = (),
        include_mode: str = "all",
        exclude: Iterable[str] = (),
    ) -> "RouteFilterPolicy":
        return cls(
            include=frozenset(normalize_venues(include)),
            include_mode=normalize_include_mode(include_mode),
            exclude=frozenset(normalize_venues(exclude)),
        )

    def allows_venues(self, venues: Iterable[str]) -> bool:
        canonical = normalize_venues(venues)

        if any(venue in self.exclude for venue in canonical):
            return False

        if self.include:
            if self.include_mode == "all":
                return all(venue in self.include for venue in canonical)
            return any(venue in self.include for venue in canonical)

        return True

    def describe(self) -> dict[str, object]:
        return {
            "include": sorted(self.include),
            "include_mode": self.include_mode,
            "exclude": sorted(self.exclude),
        }


def passes_route_policy(quote: SwapQuote, policy: RouteFilterPolicy) -> bool:
    return policy.allows_venues(quote.route_labels)
