from typing import Dict, List, Type

from thornton_events.pipeline.errors import ConfigurationError
from thornton_events.sources.adams_county import AdamsCountySource
from thornton_events.sources.anythink import AnythinkSource
from thornton_events.sources.base import Source
from thornton_events.sources.daily_deals import DailyDealsSource
from thornton_events.sources.eventbrite import EventbriteSource
from thornton_events.sources.milehigh import MileHighSource
from thornton_events.sources.thornton_city import ThorntonCitySource
from thornton_events.sources.ticketmaster import TicketmasterSource
from thornton_events.sources.westminster import WestminsterSource

SOURCES: Dict[str, Type[Source]] = {
    "ticketmaster": TicketmasterSource,
    "city-thornton": ThorntonCitySource,
    "adams-county": AdamsCountySource,
    "eventbrite": EventbriteSource,
    "anythink": AnythinkSource,
    "westminster": WestminsterSource,
    "milehigh": MileHighSource,
    "daily-deals": DailyDealsSource,
}


def get_source(slug: str) -> Source:
    try:
        return SOURCES[slug]()
    except KeyError:
        raise ConfigurationError(f"unknown source {slug!r}; expected one of {', '.join(SOURCES)}") from None


def all_sources() -> List[Source]:
    return [cls() for cls in SOURCES.values()]
