from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Optional


def _from_mapping(cls, data: Any):
    """Build a sub-record from a payload group.

    A missing or non-object group yields an empty sub-record (every field
    None); unknown keys are ignored.
    """
    if not isinstance(data, dict):
        data = {}
    return cls(**{f.name: data.get(f.name) for f in fields(cls)})


def _to_mapping(obj) -> dict:
    return {f.name: getattr(obj, f.name) for f in fields(obj)}


@dataclass(slots=True)
class Geo:
    is_eu: Optional[bool] = None
    city: Optional[str] = None
    region: Optional[str] = None
    region_code: Optional[str] = None
    country_name: Optional[str] = None
    country_code: Optional[str] = None
    continent_name: Optional[str] = None
    continent_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    postal: Optional[str] = None
    calling_code: Optional[str] = None
    flag: Optional[str] = None


@dataclass(slots=True)
class Carrier:
    name: Optional[str] = None
    mcc: Optional[str] = None
    mnc: Optional[str] = None


@dataclass(slots=True)
class Language:
    name: Optional[str] = None
    native: Optional[str] = None


@dataclass(slots=True)
class Currency:
    name: Optional[str] = None
    code: Optional[str] = None
    symbol: Optional[str] = None
    native: Optional[str] = None
    plural: Optional[str] = None


@dataclass(slots=True)
class TimeZone:
    name: Optional[str] = None
    abbr: Optional[str] = None
    offset: Optional[str] = None
    is_dst: Optional[bool] = None
    current_time: Optional[str] = None


@dataclass(slots=True)
class Threat:
    is_tor: Optional[bool] = None
    is_proxy: Optional[bool] = None
    is_anonymous: Optional[bool] = None
    is_known_attacker: Optional[bool] = None
    is_known_abuser: Optional[bool] = None
    is_threat: Optional[bool] = None
    is_bogon: Optional[bool] = None


@dataclass(slots=True)
class Asn:
    asn: Optional[str] = None
    name: Optional[str] = None
    domain: Optional[str] = None
    route: Optional[str] = None
    type: Optional[str] = None


# Document key -> sub-record type, for the nested enrichment groups
_GROUPS: dict[str, type] = {
    "carrier": Carrier,
    "language": Language,
    "currency": Currency,
    "time_zone": TimeZone,
    "threat": Threat,
    "asn": Asn,
}


@dataclass(slots=True)
class VisitorRecord:
    """One visitor, keyed by network address.

    Enrichment fields (geo and the nested groups) are filled once when the
    record is created and never refreshed afterwards.
    """

    address: str
    first_visit: datetime
    last_visit: datetime
    visit_count: int = 1
    user_agent: Optional[str] = None

    geo: Geo = field(default_factory=Geo)
    carrier: Carrier = field(default_factory=Carrier)
    language: Language = field(default_factory=Language)
    currency: Currency = field(default_factory=Currency)
    time_zone: TimeZone = field(default_factory=TimeZone)
    threat: Threat = field(default_factory=Threat)
    asn: Asn = field(default_factory=Asn)

    @classmethod
    def from_enrichment(
        cls,
        address: str,
        user_agent: Optional[str],
        data: dict,
        now: datetime,
    ) -> VisitorRecord:
        """Create a first-visit record from an enrichment payload."""
        return cls(
            address=address,
            first_visit=now,
            last_visit=now,
            visit_count=1,
            user_agent=user_agent,
            geo=_from_mapping(Geo, data),
            **{key: _from_mapping(group, data.get(key)) for key, group in _GROUPS.items()},
        )

    def to_document(self) -> dict:
        """Serialize to the storage shape.

        Geo fields sit at the top level next to ``ip`` and ``count``; the
        enrichment groups are nested objects. Timestamps are ISO-8601.
        """
        doc: dict = {
            "ip": self.address,
            "count": self.visit_count,
            "user_agent": self.user_agent,
        }
        doc.update(_to_mapping(self.geo))
        for key in _GROUPS:
            doc[key] = _to_mapping(getattr(self, key))
        doc["first_visit"] = self.first_visit.isoformat()
        doc["last_visit"] = self.last_visit.isoformat()
        return doc

    @classmethod
    def from_document(cls, doc: dict) -> VisitorRecord:
        return cls(
            address=doc["ip"],
            first_visit=datetime.fromisoformat(doc["first_visit"]),
            last_visit=datetime.fromisoformat(doc["last_visit"]),
            visit_count=int(doc.get("count", 1)),
            user_agent=doc.get("user_agent"),
            geo=_from_mapping(Geo, doc),
            **{key: _from_mapping(group, doc.get(key)) for key, group in _GROUPS.items()},
        )

    def copy(self) -> VisitorRecord:
        return VisitorRecord.from_document(self.to_document())
