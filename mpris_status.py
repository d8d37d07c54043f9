# mpris_status.py
from __future__ import annotations

from typing import Dict, List

from models import MediaState, ParseError, PlaybackStatus
from mpris_cli import FIELD_SEP, METADATA_FIELDS

_STATUS = {
    "playing": PlaybackStatus.PLAYING,
    "paused": PlaybackStatus.PAUSED,
    "stopped": PlaybackStatus.STOPPED,
    "": PlaybackStatus.NONE,
}


def parse_status_word(text: str) -> PlaybackStatus:
    s = (text or "").strip().lower()
    if s not in _STATUS:
        raise ParseError(f"unknown playback status {text!r}")
    return _STATUS[s]


def parse_position_ms(text: str) -> int:
    # playerctl reports microseconds; players without position support print nothing.
    s = (text or "").strip()
    if not s:
        return 0
    try:
        us = int(s)
    except ValueError:
        try:
            us = int(float(s))
        except ValueError:
            raise ParseError(f"unparseable position {text!r}") from None
    if us < 0:
        raise ParseError(f"negative position {text!r}")
    return us // 1000


def parse_metadata(text: str) -> List[MediaState]:
    out: List[MediaState] = []
    seen: Dict[str, int] = {}
    n = len(METADATA_FIELDS)

    for raw in (text or "").splitlines():
        if not raw.strip():
            continue
        parts = raw.split(FIELD_SEP)
        if len(parts) != n:
            raise ParseError(f"expected {n} fields from playerctl, got {len(parts)}: {raw!r}")

        player = parts[0].strip()
        if not player:
            raise ParseError(f"player line without an instance name: {raw!r}")
        if player in seen:
            raise ParseError(f"player {player!r} reported twice")
        seen[player] = len(out)

        out.append(
            MediaState(
                player=player,
                status=parse_status_word(parts[1]),
                title=parts[2].strip(),
                artist=parts[3].strip(),
                art_url=parts[4].strip(),
                position_ms=parse_position_ms(parts[5]),
            )
        )

    return out
