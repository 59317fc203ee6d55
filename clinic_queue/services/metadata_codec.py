"""Codec between triage/queue models and the encounter extension tree.

The triage state of a visit lives in one extension on the Encounter,
identified by a well-known URL. Its children are flat ``{url, value[x]}``
entries plus two nested groups (``vitalSigns`` and ``redFlags``):

    {"url": "<triage url>", "extension": [
        {"url": "triageLevel", "valueInteger": 2},
        {"url": "chiefComplaint", "valueString": "Chest pain"},
        {"url": "triageAt", "valueDateTime": "2025-01-01T09:00:00+00:00"},
        {"url": "isTriaged", "valueBoolean": true},
        {"url": "queueStatus", "valueString": "waiting"},
        {"url": "queueAddedAt", "valueDateTime": "2025-01-01T08:55:00+00:00"},
        {"url": "vitalSigns", "extension": [{"url": "heartRate", "valueInteger": 88}]},
        {"url": "redFlags", "extension": [{"url": "flag", "valueString": "Chest pain"}]}
    ]}

Decoding is lenient: unknown children are ignored and a malformed child is
dropped on its own instead of failing the whole decode.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union
import logging

from pydantic import ValidationError

from clinic_queue.config.settings import settings
from clinic_queue.models.triage import (
    QueueStatus,
    TriageRecord,
    TriageSummary,
    VitalSigns,
)
from clinic_queue.services.errors import DecodeSkipped

logger = logging.getLogger(__name__)

Extension = Dict[str, Any]

INTEGER = "valueInteger"
DECIMAL = "valueDecimal"

# (child url, VitalSigns field, value key)
VITAL_FIELDS: List[Tuple[str, str, str]] = [
    ("bloodPressureSystolic", "blood_pressure_systolic", INTEGER),
    ("bloodPressureDiastolic", "blood_pressure_diastolic", INTEGER),
    ("heartRate", "heart_rate", INTEGER),
    ("respiratoryRate", "respiratory_rate", INTEGER),
    ("temperature", "temperature", DECIMAL),
    ("oxygenSaturation", "oxygen_saturation", INTEGER),
    ("painScore", "pain_score", INTEGER),
    ("weight", "weight", DECIMAL),
    ("height", "height", DECIMAL),
]


def format_datetime(value: datetime) -> str:
    return value.isoformat()


def parse_datetime(value: Any) -> datetime:
    """Parse an ISO-8601 dateTime, accepting a trailing ``Z``."""
    if not isinstance(value, str):
        raise TypeError(f"expected ISO string, got {type(value).__name__}")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _child(children: List[Any], url: str) -> Optional[Extension]:
    for entry in children:
        if isinstance(entry, dict) and entry.get("url") == url:
            return entry
    return None


def _nested(children: List[Any], url: str) -> List[Any]:
    group = _child(children, url)
    if group is None or not isinstance(group.get("extension"), list):
        return []
    return group["extension"]


def _value(
    children: List[Any],
    url: str,
    value_key: str,
    expected: Union[type, Tuple[type, ...]],
) -> Any:
    """Typed value of a child, or None when missing or of the wrong type."""
    entry = _child(children, url)
    if entry is None or entry.get(value_key) is None:
        return None
    value = entry[value_key]
    # bool is an int subclass; never accept it where a number is expected
    if isinstance(value, bool) and expected is not bool:
        logger.debug(f"Dropping triage field {url}: boolean where number expected")
        return None
    if not isinstance(value, expected):
        logger.debug(
            f"Dropping triage field {url}: unexpected {type(value).__name__}"
        )
        return None
    return value


def _set_child(children: List[Extension], url: str, entry: Optional[Extension]):
    """Replace, append or (with ``entry=None``) delete the child named ``url``."""
    for index, existing in enumerate(children):
        if isinstance(existing, dict) and existing.get("url") == url:
            if entry is None:
                del children[index]
            else:
                children[index] = entry
            return
    if entry is not None:
        children.append(entry)


class MetadataCodec:
    """Encode/decode the triage extension of an encounter.

    Stateless apart from the extension URL it is bound to.
    """

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.triage_extension_url

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def encode(
        self,
        record: Optional[TriageRecord],
        queue_status: Optional[QueueStatus],
        queue_added_at: Optional[datetime],
    ) -> Extension:
        """
        Build the triage extension.

        Args:
            record: Full triage to encode, or None for a check-in-only entry
            queue_status: Current queue status (omitted when None)
            queue_added_at: When the patient joined today's queue

        Returns:
            Extension dict ready to be merged into ``Encounter.extension``
        """
        if record is None:
            return {
                "url": self.url,
                "extension": self._queue_children(queue_status, queue_added_at)
                + [{"url": "isTriaged", "valueBoolean": False}],
            }

        triage_at = record.triage_at or datetime.now(timezone.utc)
        children: List[Extension] = [
            {"url": "triageLevel", "valueInteger": record.triage_level},
            {"url": "chiefComplaint", "valueString": record.chief_complaint},
        ]
        if record.triage_notes:
            children.append({"url": "triageNotes", "valueString": record.triage_notes})
        if record.triage_by:
            children.append({"url": "triageBy", "valueString": record.triage_by})
        children.append({"url": "triageAt", "valueDateTime": format_datetime(triage_at)})
        children.append({"url": "isTriaged", "valueBoolean": True})
        children.extend(self._queue_children(queue_status, queue_added_at))
        children.append(
            {"url": "vitalSigns", "extension": self._encode_vitals(record.vital_signs)}
        )
        if record.red_flags:
            children.append(
                {
                    "url": "redFlags",
                    "extension": [
                        {"url": "flag", "valueString": flag} for flag in record.red_flags
                    ],
                }
            )
        return {"url": self.url, "extension": children}

    def _queue_children(
        self, queue_status: Optional[QueueStatus], queue_added_at: Optional[datetime]
    ) -> List[Extension]:
        children = []
        if queue_status is not None:
            children.append({"url": "queueStatus", "valueString": queue_status.value})
        if queue_added_at is not None:
            children.append(
                {"url": "queueAddedAt", "valueDateTime": format_datetime(queue_added_at)}
            )
        return children

    def _encode_vitals(self, vitals: VitalSigns) -> List[Extension]:
        entries = []
        for url, field, value_key in VITAL_FIELDS:
            value = getattr(vitals, field)
            if value is not None:
                entries.append({"url": url, value_key: value})
        return entries

    # ------------------------------------------------------------------
    # Subtree updates
    # ------------------------------------------------------------------

    def find(self, extensions: Optional[List[Any]]) -> Optional[Extension]:
        """Return the triage extension from an encounter's extension list."""
        if not isinstance(extensions, list):
            return None
        return _child(extensions, self.url)

    def merge(
        self, extensions: Optional[List[Extension]], subtree: Extension
    ) -> List[Extension]:
        """Put ``subtree`` in place of the triage extension, keeping siblings.

        Returns a new list; the input is not modified.
        """
        merged = list(extensions or [])
        for index, entry in enumerate(merged):
            if isinstance(entry, dict) and entry.get("url") == self.url:
                merged[index] = subtree
                return merged
        merged.append(subtree)
        return merged

    def with_queue_state(
        self,
        subtree: Optional[Extension],
        queue_status: Optional[QueueStatus],
        queue_added_at: Optional[datetime],
        reset_triaged: bool = False,
    ) -> Extension:
        """Copy of ``subtree`` with its queue children set or removed.

        A ``queue_status`` of None deletes both ``queueStatus`` and
        ``queueAddedAt``. Triage children are left untouched, except
        ``isTriaged`` which is set to false when ``reset_triaged`` is given.
        """
        if subtree is None or not isinstance(subtree.get("extension"), list):
            updated: Extension = {"url": self.url, "extension": []}
        else:
            updated = {**subtree, "extension": list(subtree["extension"])}
        children = updated["extension"]

        if queue_status is None:
            _set_child(children, "queueStatus", None)
            _set_child(children, "queueAddedAt", None)
        else:
            _set_child(
                children,
                "queueStatus",
                {"url": "queueStatus", "valueString": queue_status.value},
            )
            if queue_added_at is not None:
                _set_child(
                    children,
                    "queueAddedAt",
                    {
                        "url": "queueAddedAt",
                        "valueDateTime": format_datetime(queue_added_at),
                    },
                )
            if reset_triaged:
                _set_child(
                    children, "isTriaged", {"url": "isTriaged", "valueBoolean": False}
                )
        return updated

    # ------------------------------------------------------------------
    # Decoding
    # ------------------------------------------------------------------

    def has_metadata(self, extensions: Optional[List[Any]]) -> bool:
        return self.find(extensions) is not None

    def decode(self, extensions: Optional[List[Any]]) -> TriageSummary:
        """
        Decode the triage extension of an encounter.

        Args:
            extensions: ``Encounter.extension`` as returned by the store

        Returns:
            TriageSummary; empty when the subtree is missing or unusable.
            ``triage`` is only set when both level and chief complaint exist.
        """
        try:
            children = self._children(extensions)
        except DecodeSkipped as e:
            logger.debug(f"Triage metadata skipped: {e.message}")
            return TriageSummary()

        triage = None
        triage_level = _value(children, "triageLevel", INTEGER, int)
        chief_complaint = _value(children, "chiefComplaint", "valueString", str)
        if triage_level is not None and chief_complaint:
            triage = TriageRecord(
                triage_level=triage_level,
                chief_complaint=chief_complaint,
                triage_notes=_value(children, "triageNotes", "valueString", str),
                triage_by=_value(children, "triageBy", "valueString", str),
                triage_at=self._datetime(children, "triageAt"),
                is_triaged=bool(_value(children, "isTriaged", "valueBoolean", bool)),
                vital_signs=self._decode_vitals(_nested(children, "vitalSigns")),
                red_flags=self._decode_red_flags(_nested(children, "redFlags")),
            )

        return TriageSummary(
            triage=triage,
            queue_status=self._queue_status(children),
            queue_added_at=self._datetime(children, "queueAddedAt"),
        )

    def _children(self, extensions: Optional[List[Any]]) -> List[Any]:
        if not extensions:
            raise DecodeSkipped("encounter has no extensions")
        subtree = self.find(extensions)
        if subtree is None:
            raise DecodeSkipped(f"no extension with url {self.url}")
        children = subtree.get("extension")
        if not isinstance(children, list):
            raise DecodeSkipped("triage extension has no child list")
        return children

    def _queue_status(self, children: List[Any]) -> Optional[QueueStatus]:
        raw = _value(children, "queueStatus", "valueString", str)
        if raw is None:
            return None
        try:
            return QueueStatus(raw)
        except ValueError:
            logger.debug(f"Dropping unknown queue status {raw!r}")
            return None

    def _datetime(self, children: List[Any], url: str) -> Optional[datetime]:
        raw = _value(children, url, "valueDateTime", str)
        if raw is None:
            return None
        try:
            return parse_datetime(raw)
        except ValueError:
            logger.debug(f"Dropping triage field {url}: bad dateTime {raw!r}")
            return None

    def _decode_vitals(self, entries: List[Any]) -> VitalSigns:
        values: Dict[str, Any] = {}
        for url, field, value_key in VITAL_FIELDS:
            expected = int if value_key == INTEGER else (int, float)
            value = _value(entries, url, value_key, expected)
            if value is None:
                continue
            try:
                VitalSigns.model_validate({field: value})
            except ValidationError:
                logger.debug(f"Dropping vital {url}: out of range ({value!r})")
                continue
            values[field] = value
        return VitalSigns(**values)

    def _decode_red_flags(self, entries: List[Any]) -> List[str]:
        return [
            entry["valueString"]
            for entry in entries
            if isinstance(entry, dict)
            and isinstance(entry.get("valueString"), str)
            and entry["valueString"]
        ]
