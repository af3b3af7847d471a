"""Odds API client utilities.

``OddsApiClient`` is a thin wrapper around The Odds API endpoints used for NFL
lines. ``OddsApiLineSource`` turns its payloads into catalog ``Line`` objects
for one week, taking prices from the first preferred bookmaker that lists an
event.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Mapping, MutableMapping, Optional, Sequence

import requests

from controller.weeks import WeekCalendar, WeekWindow
from odds_client.catalog import CatalogUnavailable, Line
from odds_client.deep_markets import (
    BINARY_MARKETS,
    GAME_MARKETS,
    category_for_market,
    get_player_prop_markets,
)
from prop_engine.models import Cycle


NFL_SPORT_KEY = "americanfootball_nfl"
DEFAULT_BOOKMAKERS = ("fanduel", "draftkings", "betmgm")

_SLUG = re.compile(r"[^a-z0-9]+")


class OddsApiError(RuntimeError):
    """Raised when the Odds API returns a non-success status code."""


@dataclass
class OddsResponse:
    """Container for Odds API payloads and headers."""

    data: Any
    remaining_requests: Optional[int]
    reset_time: Optional[datetime]


class OddsApiClient:
    BASE_URL = "https://api.the-odds-api.com/v4"

    def __init__(
        self,
        api_key: str,
        session: Optional[requests.Session] = None,
        sport_key: str = NFL_SPORT_KEY,
        timeout: float = 15,
    ) -> None:
        if not api_key:
            raise ValueError("An Odds API key must be supplied")
        self._api_key = api_key
        self._session = session or requests.Session()
        self.sport_key = sport_key
        self._timeout = timeout

    def get_odds(
        self,
        regions: Iterable[str],
        bookmakers: Iterable[str],
        markets: Iterable[str],
        odds_format: str = "american",
        date_format: str = "iso",
    ) -> OddsResponse:
        """Fetch game markets for every upcoming event."""

        params = self._params(regions, bookmakers, markets, odds_format, date_format)
        return self._get(f"/sports/{self.sport_key}/odds", params)

    def get_event_odds(
        self,
        event_id: str,
        regions: Iterable[str],
        bookmakers: Iterable[str],
        markets: Iterable[str],
        odds_format: str = "american",
        date_format: str = "iso",
    ) -> OddsResponse:
        """Fetch player-prop markets for a single event."""

        params = self._params(regions, bookmakers, markets, odds_format, date_format)
        return self._get(f"/sports/{self.sport_key}/events/{event_id}/odds", params)

    def _params(
        self,
        regions: Iterable[str],
        bookmakers: Iterable[str],
        markets: Iterable[str],
        odds_format: str,
        date_format: str,
    ) -> MutableMapping[str, str]:
        params: MutableMapping[str, str] = {
            "apiKey": self._api_key,
            "regions": ",".join(sorted(regions)),
            "markets": ",".join(markets),
            "oddsFormat": odds_format,
            "dateFormat": date_format,
        }
        bookmakers = list(bookmakers)
        if bookmakers:
            params["bookmakers"] = ",".join(bookmakers)
        return params

    def _get(self, path: str, params: Mapping[str, str]) -> OddsResponse:
        url = f"{self.BASE_URL}{path}"
        response = self._session.get(url, params=params, timeout=self._timeout)
        if response.status_code != 200:
            raise OddsApiError(
                f"Odds API request failed with status {response.status_code}: {response.text}"
            )

        headers = response.headers
        remaining = _safe_int(headers.get("x-requests-remaining"))
        reset_time = _parse_reset(headers)

        return OddsResponse(response.json(), remaining, reset_time)


class OddsApiLineSource:
    """``LineSource`` backed by live Odds API prices."""

    def __init__(
        self,
        client: OddsApiClient,
        calendar: Optional[WeekCalendar] = None,
        bookmakers: Sequence[str] = DEFAULT_BOOKMAKERS,
        regions: Sequence[str] = ("us",),
        include_player_props: bool = True,
        prop_categories: Optional[List[str]] = None,
    ) -> None:
        self._client = client
        self._calendar = calendar or WeekCalendar()
        self._bookmakers = tuple(bookmakers)
        self._regions = tuple(regions)
        self._include_player_props = include_player_props
        self._prop_markets = get_player_prop_markets(prop_categories)
        self.remaining_requests: Optional[int] = None

    def list_lines(self, cycle: Cycle) -> List[Line]:
        window = self._calendar.week_window(cycle)
        try:
            response = self._client.get_odds(self._regions, self._bookmakers, list(GAME_MARKETS))
            self._track(response)
            lines: List[Line] = []
            for event in response.data or []:
                kickoff = _parse_time(event.get("commence_time"))
                if kickoff is None or not window.contains(kickoff):
                    continue
                lines.extend(self._event_lines(event, cycle, kickoff))
                if self._include_player_props and self._prop_markets:
                    props = self._client.get_event_odds(
                        event["id"], self._regions, self._bookmakers, self._prop_markets
                    )
                    self._track(props)
                    lines.extend(self._event_lines(props.data or {}, cycle, kickoff))
        except (OddsApiError, requests.RequestException, ValueError, KeyError, TypeError) as exc:
            raise CatalogUnavailable(f"Odds API lines for {cycle.label()} unavailable: {exc}") from exc
        return lines

    def window(self, cycle: Cycle) -> WeekWindow:
        return self._calendar.week_window(cycle)

    def _track(self, response: OddsResponse) -> None:
        if response.remaining_requests is not None:
            self.remaining_requests = response.remaining_requests

    def _pick_bookmaker(self, event: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        books = {book.get("key"): book for book in event.get("bookmakers") or []}
        for key in self._bookmakers:
            if key in books:
                return books[key]
        return next(iter(books.values()), None)

    def _event_lines(self, event: Mapping[str, Any], cycle: Cycle, kickoff: datetime) -> List[Line]:
        book = self._pick_bookmaker(event)
        if book is None:
            return []
        event_id = event["id"]
        matchup = f"{event.get('away_team', '')} vs {event.get('home_team', '')}".strip()
        lines: List[Line] = []
        for market in book.get("markets") or []:
            key = market.get("key")
            category = category_for_market(key)
            if category is None:
                continue
            for outcome in market.get("outcomes") or []:
                line = _outcome_line(event_id, key, category, matchup, outcome, cycle, kickoff)
                if line is not None:
                    lines.append(line)
        return lines


def _outcome_line(
    event_id: str,
    market_key: str,
    category: str,
    matchup: str,
    outcome: Mapping[str, Any],
    cycle: Cycle,
    kickoff: datetime,
) -> Optional[Line]:
    name = str(outcome.get("name") or "")
    price = _safe_int(outcome.get("price"))
    if not name or price is None:
        return None
    point = outcome.get("point")
    threshold = float(point) if point is not None else 0.0

    if market_key in ("h2h", "spreads"):
        subject, team, suffix = name, name, _slug(name)
    elif market_key == "totals":
        if name.lower() != "over":
            return None
        subject, team, suffix = matchup, None, "over"
    else:
        wanted = "yes" if market_key in BINARY_MARKETS else "over"
        player = outcome.get("description")
        if name.lower() != wanted or not player:
            return None
        subject, team, suffix = str(player), None, _slug(str(player))

    return Line(
        source_id=f"{event_id}:{market_key}:{suffix}",
        subject=subject,
        category=category,
        price=price,
        threshold=threshold,
        team=team,
        cycle=cycle,
        valid_to=kickoff,
    )


def _slug(value: str) -> str:
    return _SLUG.sub("-", value.lower()).strip("-")


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp into naive UTC."""

    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _safe_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_reset(headers: Mapping[str, str]) -> Optional[datetime]:
    reset_timestamp = headers.get("x-requests-reset")
    if reset_timestamp:
        try:
            return datetime.fromtimestamp(int(reset_timestamp))
        except (TypeError, ValueError):
            pass

    reset_remaining = headers.get("x-requests-remaining-time")
    if reset_remaining:
        try:
            seconds = int(reset_remaining)
        except (TypeError, ValueError):
            return None
        return datetime.utcnow() if seconds <= 0 else datetime.utcnow() + timedelta(seconds=seconds)

    return None
