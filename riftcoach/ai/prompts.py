"""Prompt construction for coaching analyses."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any

from riftcoach.analysis.contracts import AnalysisMode, TimeWindow, TruthEvent


def format_game_time(timestamp_ms: int) -> str:
  """Render milliseconds as `mm:ss` game time."""
  total_seconds = max(timestamp_ms, 0) // 1000
  return f"{total_seconds // 60:02d}:{total_seconds % 60:02d}"


def summarize_subject(match_detail: Mapping[str, Any], subject_id: str) -> dict[str, Any]:
  """Pick the subject's row from a match-v5 detail record."""
  participants = (match_detail.get("info") or {}).get("participants") or []
  for participant in participants:
    if not isinstance(participant, Mapping):
      continue
    if participant.get("puuid") == subject_id or str(participant.get("participantId")) == str(subject_id):
      return {
        "champion": participant.get("championName"),
        "position": participant.get("teamPosition") or participant.get("individualPosition"),
        "kills": participant.get("kills"),
        "deaths": participant.get("deaths"),
        "assists": participant.get("assists"),
        "win": participant.get("win"),
      }
  return {}


def _window_text(window: TimeWindow | None) -> str:
  if window is None:
    return "the whole game"
  if window.end_ms is None:
    return f"{format_game_time(window.start_ms)} until the end of the game"
  return f"{format_game_time(window.start_ms)} to {format_game_time(window.end_ms)}"


def build_coaching_prompt(
  *,
  mode: AnalysisMode,
  truth_events: Sequence[TruthEvent],
  subject_summary: Mapping[str, Any],
  window: TimeWindow | None,
  question: str | None,
  frame_count: int = 0,
) -> str:
  """Assemble the coaching prompt with the verified events as the only allowed facts."""
  facts = [event.as_prompt_fact() | {"time": format_game_time(event.timestamp)} for event in truth_events]
  lines = [
    "You are an expert League of Legends coach reviewing one player's match.",
    f"Player: {json.dumps(dict(subject_summary), ensure_ascii=False)}",
    f"Analysis window: {_window_text(window)}.",
    "",
    "VERIFIED EVENTS (the only facts you may rely on):",
    json.dumps(facts, ensure_ascii=False),
    "",
    "Rules:",
    "- Every insight timestamp (milliseconds) must refer to one of the verified events above.",
    "- Do not invent kills, objectives or structures that are not listed.",
    "- SOLO_KILL and GROUP_KILL categories are facts; do not reclassify them.",
    "- Recommend items by their exact in-game English name.",
    "- Insight type is one of MISTAKE, TURNING_POINT, GOOD_PLAY, INFO.",
  ]
  if mode == AnalysisMode.VISION and frame_count:
    lines.append(f"- {frame_count} gameplay frames are attached in chronological order; use them for positioning and wave state only.")
  if question:
    lines.extend(["", f"The player asks: {question}"])
  lines.extend(["", "Respond with JSON containing `summary`, `insights` and `item_recommendations`."])
  return "\n".join(lines)
