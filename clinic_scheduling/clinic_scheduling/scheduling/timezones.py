"""
Timezone Normalizer

Converts between a doctor's local wall-clock time and UTC instants.
Every instant leaving this module is timezone-aware; every instant
handed to the store is UTC.
"""

import logging
from datetime import datetime
from typing import List, NamedTuple, Optional

import pytz

from .settings import SchedulingSettings


logger = logging.getLogger(__name__)


class ZoneResolution(NamedTuple):
	name: str
	substituted: bool


class TimezoneNormalizer:
	"""
	Normaliza zonas horarias contra la lista soportada.

	Una zona no soportada se reemplaza por la zona por defecto y la
	sustitución se reporta (warning + ZoneResolution.substituted).
	"""

	def __init__(self, settings: Optional[SchedulingSettings] = None):
		self.settings = settings or SchedulingSettings()

	def supported_zones(self) -> List[str]:
		return list(self.settings.supported_timezones)

	def is_supported(self, zone: Optional[str]) -> bool:
		return bool(zone) and zone in self.settings.supported_timezones

	def resolve_zone(self, zone: Optional[str]) -> ZoneResolution:
		if self.is_supported(zone):
			return ZoneResolution(zone, False)

		default = self.settings.default_timezone
		logger.warning(f"Unsupported timezone {zone!r}, falling back to {default}")
		return ZoneResolution(default, True)

	def get_tz(self, zone: Optional[str]):
		return pytz.timezone(self.resolve_zone(zone).name)

	def to_utc(self, local: datetime, zone: Optional[str]) -> datetime:
		"""
		Convierte una hora local a un instante UTC.

		Args:
			local: datetime naive (hora de pared en `zone`) o aware
			zone: zona IANA del doctor

		Returns:
			datetime aware en UTC, con precisión de segundos
		"""
		if local.tzinfo is None:
			# Horas ambiguas o inexistentes (cambio de horario) se resuelven como horario estándar
			local = self.get_tz(zone).localize(local, is_dst=False)

		return local.astimezone(pytz.UTC).replace(microsecond=0)

	def to_zone(self, instant: datetime, zone: Optional[str]) -> datetime:
		"""
		Convierte un instante a la hora local de `zone`.

		Un datetime naive se interpreta como UTC.
		"""
		if instant.tzinfo is None:
			instant = pytz.UTC.localize(instant)

		return instant.astimezone(self.get_tz(zone))

	def format_for_zone(
		self,
		instant: datetime,
		zone: Optional[str],
		fmt: str = "%Y-%m-%d %H:%M",
	) -> str:
		return self.to_zone(instant, zone).strftime(fmt)

	def utc_offset_minutes(self, zone: Optional[str], at: Optional[datetime] = None) -> int:
		"""Offset de la zona respecto de UTC en minutos, en el instante `at` (por defecto ahora)."""
		at = at or datetime.now(pytz.UTC)
		offset = self.to_zone(at, zone).utcoffset()
		return int(offset.total_seconds() // 60)
