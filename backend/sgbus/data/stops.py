"""
Stop records and the built-in fallback stop list.
"""
from typing import NamedTuple

from sgbus.data.geo import Coordinate


class StopRecord(NamedTuple):
    stop_code: str
    stop_name: str
    road_name: str
    latitude: float
    longitude: float

    @property
    def location(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match on name, code and road name."""
        q = query.strip().lower()
        if not q:
            return True
        return q in self.stop_name.lower() or q in self.stop_code.lower() or q in self.road_name.lower()


class RankedStop(NamedTuple):
    """A stop with its distance from one query origin. Not reused across queries."""

    stop: StopRecord
    distance_km: float

    @property
    def stop_code(self) -> str:
        return self.stop.stop_code


# Well-known central stops, used when the remote catalog is unreachable or empty
FALLBACK_STOPS: tuple[StopRecord, ...] = (
    # Orchard
    StopRecord("09037", "Orchard Rd", "Orchard Road", 1.304833, 103.831833),
    StopRecord("09047", "Orchard Plaza", "Orchard Road", 1.305833, 103.830833),
    # CBD
    StopRecord("02049", "Raffles Place MRT", "Raffles Quay", 1.283694, 103.851556),
    StopRecord("02059", "Marina Bay Sands", "Bayfront Avenue", 1.283417, 103.860694),
    # Bugis
    StopRecord("01012", "Bugis Junction", "Victoria Street", 1.299306, 103.854694),
    StopRecord("01022", "Bugis MRT", "North Bridge Road", 1.299833, 103.855556),
    StopRecord("03111", "Clarke Quay MRT", "North Bridge Road", 1.288611, 103.846722),
    StopRecord("04168", "Chinatown MRT", "New Bridge Road", 1.284528, 103.844139),
    StopRecord("48009", "Little India MRT", "Serangoon Road", 1.306722, 103.849306),
    StopRecord("04211", "Tanjong Pagar MRT", "Tanjong Pagar Road", 1.276528, 103.845889),
    StopRecord("08031", "Dhoby Ghaut MRT", "Orchard Road", 1.298833, 103.845611),
    StopRecord("09023", "Somerset MRT", "Orchard Road", 1.300694, 103.839028),
    # Heartland interchanges
    StopRecord("28009", "Ang Mo Kio Hub", "Ang Mo Kio Avenue 3", 1.369028, 103.848472),
    StopRecord("59009", "Jurong East MRT", "Jurong East Street 13", 1.333194, 103.742472),
    StopRecord("65009", "Tampines MRT", "Tampines Central 1", 1.354028, 103.942694),
)
