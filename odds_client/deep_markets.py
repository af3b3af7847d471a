"""NFL market keys on The Odds API and the prop categories they map to.

Game markets come back from the bulk odds endpoint; player props are only
available per event, so they are requested separately.
"""

from __future__ import annotations

from typing import Dict, List, Optional

GAME_MARKETS: Dict[str, str] = {
    "h2h": "moneyline",
    "spreads": "spread",
    "totals": "total",
}

PLAYER_PROP_MARKETS: Dict[str, str] = {
    "player_pass_yds": "passing yards",
    "player_pass_tds": "passing touchdowns",
    "player_pass_completions": "completions",
    "player_pass_attempts": "passing attempts",
    "player_pass_interceptions": "interceptions",
    "player_rush_yds": "rushing yards",
    "player_rush_attempts": "rushing attempts",
    "player_reception_yds": "receiving yards",
    "player_receptions": "receptions",
    "player_anytime_td": "anytime touchdown",
}

# Markets that are yes/no: the listed price is for the "Yes" outcome.
BINARY_MARKETS = frozenset({"player_anytime_td"})


def category_for_market(market_key: str) -> Optional[str]:
    return GAME_MARKETS.get(market_key) or PLAYER_PROP_MARKETS.get(market_key)


def get_player_prop_markets(categories: Optional[List[str]] = None) -> List[str]:
    """Market keys to request, optionally limited to the given categories."""

    if not categories:
        return list(PLAYER_PROP_MARKETS)
    wanted = {category.casefold() for category in categories}
    return [key for key, category in PLAYER_PROP_MARKETS.items() if category in wanted]
