"""Deterministic extraction of verified game events from a match timeline.

The extractor turns the raw match-v5 timeline into a bounded, prioritized list of
`TruthEvent` values. The list is injected into the prompt as the only facts the
model may reference and is later used to ground the generated insights.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from typing import Any

from riftcoach.analysis.contracts import EVENT_PRIORITY, KillCategory, TimeWindow, TruthEvent, TruthEventType

logger = logging.getLogger(__name__)

DEFAULT_MAX_EVENTS = 40

_OBJECTIVE_EVENTS = {"ELITE_MONSTER_KILL"}
_TURRET_EVENTS = {"BUILDING_KILL", "TURRET_PLATE_DESTROYED"}
_KILL_EVENTS = {"CHAMPION_KILL"}
_SKILL_EVENTS = {"SKILL_LEVEL_UP"}


class TruthExtractionError(ValueError):
  """Raised when a timeline cannot be interpreted for the requested subject."""


def resolve_participant_id(timeline: Mapping[str, Any], subject_id: str | int) -> int:
  """Map a puuid (or a numeric participant id) to the timeline participant id."""
  info = timeline.get("info")
  if not isinstance(info, Mapping):
    raise TruthExtractionError("Timeline is missing the info section.")

  participants = info.get("participants") or []
  # Numeric ids are accepted as-is when they exist in the participant table.
  if isinstance(subject_id, int) or (isinstance(subject_id, str) and subject_id.isdigit()):
    numeric_id = int(subject_id)
    if any(_as_int(entry.get("participantId")) == numeric_id for entry in participants if isinstance(entry, Mapping)):
      return numeric_id

  for entry in participants:
    if isinstance(entry, Mapping) and entry.get("puuid") == subject_id:
      participant_id = _as_int(entry.get("participantId"))
      if participant_id is not None:
        return participant_id

  raise TruthExtractionError(f"Subject {subject_id!r} is not a participant of this match.")


def _as_int(value: Any) -> int | None:
  if isinstance(value, bool):
    return None
  if isinstance(value, int):
    return value
  if isinstance(value, str) and value.isdigit():
    return int(value)
  return None


def _iter_events(timeline: Mapping[str, Any]) -> Iterator[Mapping[str, Any]]:
  """Yield timeline events in stream order (frame order, then event order)."""
  frames = timeline["info"].get("frames") or []
  for frame in frames:
    if not isinstance(frame, Mapping):
      continue
    for event in frame.get("events") or []:
      if isinstance(event, Mapping):
        yield event


def _kill_detail(event: Mapping[str, Any], participant_id: int, assists: tuple[int, ...]) -> tuple[str, bool]:
  killer_id = _as_int(event.get("killerId"))
  victim_id = _as_int(event.get("victimId"))
  if victim_id == participant_id:
    return "Player died", True
  if killer_id == participant_id:
    return "Player got a kill", True
  if participant_id in assists:
    return "Player assisted a kill", True
  return "Champion kill", False


def _objective_detail(event: Mapping[str, Any]) -> str:
  monster = event.get("monsterSubType") or event.get("monsterType") or "ELITE_MONSTER"
  return f"{monster} taken by team {event.get('killerTeamId', 'unknown')}"


def _turret_detail(event: Mapping[str, Any]) -> str:
  if event.get("type") == "TURRET_PLATE_DESTROYED":
    return f"Turret plate destroyed in {event.get('laneType', 'unknown lane')}"
  building = event.get("towerType") or event.get("buildingType") or "BUILDING"
  return f"{building} destroyed in {event.get('laneType', 'unknown lane')}"


def _to_truth_event(event: Mapping[str, Any], participant_id: int, *, include_skill_ups: bool) -> TruthEvent | None:
  event_type = event.get("type")
  timestamp = _as_int(event.get("timestamp"))
  if timestamp is None:
    return None

  if event_type in _KILL_EVENTS:
    assists = tuple(pid for pid in (_as_int(item) for item in event.get("assistingParticipantIds") or []) if pid is not None)
    category = KillCategory.SOLO_KILL if not assists else KillCategory.GROUP_KILL
    killer_id = _as_int(event.get("killerId"))
    victim_id = _as_int(event.get("victimId"))
    participants = tuple(pid for pid in (killer_id, victim_id, *assists) if pid is not None)
    detail, involves_subject = _kill_detail(event, participant_id, assists)
    return TruthEvent(type=TruthEventType.KILL, timestamp=timestamp, participant_ids=participants, derived_category=category, detail=detail, involves_subject=involves_subject)

  if event_type in _OBJECTIVE_EVENTS:
    killer_id = _as_int(event.get("killerId"))
    participants = (killer_id,) if killer_id is not None else ()
    return TruthEvent(type=TruthEventType.OBJECTIVE, timestamp=timestamp, participant_ids=participants, detail=_objective_detail(event), involves_subject=killer_id == participant_id)

  if event_type in _TURRET_EVENTS:
    killer_id = _as_int(event.get("killerId"))
    assists = tuple(pid for pid in (_as_int(item) for item in event.get("assistingParticipantIds") or []) if pid is not None)
    participants = tuple(pid for pid in (killer_id, *assists) if pid is not None and pid > 0)
    return TruthEvent(type=TruthEventType.TURRET, timestamp=timestamp, participant_ids=participants, detail=_turret_detail(event), involves_subject=participant_id in participants)

  if include_skill_ups and event_type in _SKILL_EVENTS:
    # Skill-ups are only meaningful for the subject being coached.
    if _as_int(event.get("participantId")) != participant_id:
      return None
    return TruthEvent(type=TruthEventType.SKILL_UP, timestamp=timestamp, participant_ids=(participant_id,), detail=f"Skill slot {event.get('skillSlot', '?')} leveled", involves_subject=True)

  return None


class TruthExtractor:
  """Build the ordered, truncated truth set for one subject of one match."""

  def __init__(self, *, max_events: int = DEFAULT_MAX_EVENTS, include_skill_ups: bool = False) -> None:
    if max_events <= 0:
      raise ValueError("max_events must be positive")
    self._max_events = max_events
    self._include_skill_ups = include_skill_ups

  @property
  def max_events(self) -> int:
    return self._max_events

  def extract(self, timeline: Mapping[str, Any], subject_id: str | int, window: TimeWindow | None = None) -> list[TruthEvent]:
    """Return retained events ordered by priority, timestamp and stream position."""
    participant_id = resolve_participant_id(timeline, subject_id)

    ranked: list[tuple[int, int, int, TruthEvent]] = []
    for position, raw_event in enumerate(_iter_events(timeline)):
      truth_event = _to_truth_event(raw_event, participant_id, include_skill_ups=self._include_skill_ups)
      if truth_event is None:
        continue
      if window is not None and not window.contains(truth_event.timestamp):
        continue
      ranked.append((EVENT_PRIORITY[truth_event.type], truth_event.timestamp, position, truth_event))

    ranked.sort(key=lambda entry: entry[:3])
    if len(ranked) > self._max_events:
      logger.debug("Truncating truth set from %d to %d events", len(ranked), self._max_events)

    return [entry[3] for entry in ranked[: self._max_events]]


def extract(timeline: Mapping[str, Any], subject_id: str | int, window: TimeWindow | None = None, *, max_events: int = DEFAULT_MAX_EVENTS) -> list[TruthEvent]:
  """Convenience wrapper around `TruthExtractor.extract` with default options."""
  return TruthExtractor(max_events=max_events).extract(timeline, subject_id, window)
