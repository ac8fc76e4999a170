"""Timezone Resolver

Maps timezone abbreviations to IANA zones and converts wall-clock times
between zones. Offsets are always computed from the zone rules at the
instant in question, so daylight saving time is honoured.
"""

import re
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from dateutil import tz

from ...core.logging_manager import LoggingManager
from ...scheduling.models import DateSpec, TimeOfDay, TimeZoneTag


# Candidate zones per abbreviation, preferred zone first
TIMEZONE_ABBREVIATIONS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "PST": ("America/Los_Angeles",),
    "PDT": ("America/Los_Angeles",),
    "PT": ("America/Los_Angeles",),
    "MST": ("America/Denver", "America/Phoenix"),
    "MDT": ("America/Denver",),
    "MT": ("America/Denver",),
    "CST": ("America/Chicago", "Asia/Shanghai", "America/Havana"),
    "CDT": ("America/Chicago",),
    "CT": ("America/Chicago",),
    "EST": ("America/New_York",),
    "EDT": ("America/New_York",),
    "ET": ("America/New_York",),
    "AKST": ("America/Anchorage",),
    "AKDT": ("America/Anchorage",),
    "HST": ("Pacific/Honolulu",),
    "GMT": ("Etc/GMT",),
    "UTC": ("UTC",),
    "BST": ("Europe/London", "Asia/Dhaka"),
    "IST": ("Asia/Kolkata", "Europe/Dublin", "Asia/Jerusalem"),
    "CET": ("Europe/Berlin",),
    "CEST": ("Europe/Berlin",),
    "EET": ("Europe/Helsinki",),
    "EEST": ("Europe/Helsinki",),
    "MSK": ("Europe/Moscow",),
    "AEST": ("Australia/Sydney",),
    "AEDT": ("Australia/Sydney",),
    "ACST": ("Australia/Adelaide",),
    "ACDT": ("Australia/Adelaide",),
    "AWST": ("Australia/Perth",),
    "NZST": ("Pacific/Auckland",),
    "NZDT": ("Pacific/Auckland",),
    "JST": ("Asia/Tokyo",),
    "KST": ("Asia/Seoul",),
})

_ABBREVIATION_SHAPE = re.compile(r"^[A-Z]{2,5}$")
_NOT_ABBREVIATIONS = frozenset({
    "AM", "PM", "AT", "ON", "IN", "TO", "FOR", "AND", "WITH", "THE", "OR", "BY", "FROM", "EVERY",
})


def looks_like_abbreviation(token: str) -> bool:
    """True for upper-case tokens shaped like a timezone abbreviation."""
    return bool(_ABBREVIATION_SHAPE.match(token)) and token not in _NOT_ABBREVIATIONS


class TimezoneResolver:
    """Resolves timezone abbreviations against IANA zone rules."""

    def __init__(self, precedence: Optional[Dict[str, str]] = None):
        """Initialize the resolver.

        Args:
            precedence: Preferred zone per abbreviation, overriding the
                built-in order for abbreviations shared by several zones
        """
        self.logger = LoggingManager.get_logger(__name__)
        self.precedence: Dict[str, str] = {}

        for abbreviation, zone_id in (precedence or {}).items():
            if tz.gettz(zone_id) is None:
                self.logger.warning(f"Ignoring precedence {abbreviation} -> {zone_id}: unknown zone")
                continue
            self.precedence[abbreviation.upper()] = zone_id

    def is_known(self, abbreviation: str) -> bool:
        return abbreviation.upper() in TIMEZONE_ABBREVIATIONS

    def candidates(self, abbreviation: str) -> Tuple[str, ...]:
        return TIMEZONE_ABBREVIATIONS.get(abbreviation.upper(), ())

    def zone_for(self, abbreviation: str) -> Optional[str]:
        """IANA zone an abbreviation stands for, after precedence overrides."""
        key = abbreviation.upper()
        if key in self.precedence:
            return self.precedence[key]

        zones = TIMEZONE_ABBREVIATIONS.get(key)
        return zones[0] if zones else None

    def resolve(self, abbreviation: str, instant: datetime) -> Optional[TimeZoneTag]:
        """Resolve an abbreviation at a given instant.

        Args:
            abbreviation: Abbreviation as written, any case
            instant: Moment the offset applies to; naive values are read as UTC

        Returns:
            Tag carrying the zone and its UTC offset at that instant, or None
            when the abbreviation is not known
        """
        zone_id = self.zone_for(abbreviation)
        if zone_id is None:
            self.logger.debug(f"Unknown timezone abbreviation '{abbreviation}'")
            return None

        return TimeZoneTag(
            abbreviation=abbreviation.upper(),
            zone_id=zone_id,
            utc_offset=self.offset_at(zone_id, instant),
        )

    def resolve_on(self, abbreviation: str, when: DateSpec, at: TimeOfDay) -> Optional[TimeZoneTag]:
        """Resolve an abbreviation for a wall-clock time in the abbreviation's own zone."""
        zone_id = self.zone_for(abbreviation)
        if zone_id is None:
            return None

        local = self._localize(when, at, zone_id)
        return TimeZoneTag(abbreviation.upper(), zone_id, local.utcoffset())

    def offset_at(self, zone_id: str, instant: datetime) -> timedelta:
        """UTC offset of a zone at an instant."""
        zone = self._zone(zone_id)
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        return instant.astimezone(zone).utcoffset()

    def convert(self, at: TimeOfDay, when: DateSpec, source: TimeZoneTag,
                target_zone: str) -> Tuple[TimeOfDay, DateSpec]:
        """Re-express a wall-clock time from the source zone in the target zone.

        The source zone rules are evaluated on `when`, so the conversion
        uses the offsets in force on the event date.

        Args:
            at: Time as written in the source zone
            when: Date the time falls on in the source zone
            source: Resolved source timezone
            target_zone: IANA id of the zone to convert to

        Returns:
            Converted time and the date it falls on in the target zone
        """
        local = self._localize(when, at, source.zone_id)
        converted = local.astimezone(self._zone(target_zone))

        self.logger.debug(
            f"Converted {when} {at} {source.abbreviation} ({source.zone_id}) "
            f"to {converted.date()} {converted:%H:%M} {target_zone}"
        )
        return TimeOfDay(converted.hour, converted.minute), DateSpec.from_date(converted.date())

    def convert_after(self, at: TimeOfDay, when: DateSpec, source: TimeZoneTag, target_zone: str,
                      minutes: int) -> Tuple[TimeOfDay, DateSpec]:
        """Time and date in the target zone `minutes` of elapsed time after a source wall time."""
        start = self._localize(when, at, source.zone_id).astimezone(timezone.utc)
        converted = (start + timedelta(minutes=minutes)).astimezone(self._zone(target_zone))
        return TimeOfDay(converted.hour, converted.minute), DateSpec.from_date(converted.date())

    def _localize(self, when: DateSpec, at: TimeOfDay, zone_id: str) -> datetime:
        local = datetime.combine(when.to_date(), at.to_time(), tzinfo=self._zone(zone_id))
        # Wall times skipped by a DST jump move forward past the gap
        return tz.resolve_imaginary(local)

    def _zone(self, zone_id: str):
        zone = tz.gettz(zone_id)
        if zone is None:
            raise ValueError(f"Unknown timezone '{zone_id}'")
        return zone
