# mpris_cli.py
from __future__ import annotations

from typing import List, Optional

from models import TransportOp

# ASCII unit separator; titles may legitimately contain tabs and pipes.
FIELD_SEP = "\x1f"

METADATA_FIELDS = (
    "{{playerInstance}}",
    "{{status}}",
    "{{title}}",
    "{{artist}}",
    "{{mpris:artUrl}}",
    "{{position}}",
)

METADATA_FORMAT = FIELD_SEP.join(METADATA_FIELDS)


def metadata_args() -> List[str]:
    return ["--all-players", "metadata", "--format", METADATA_FORMAT]


def transport_args(op: TransportOp, player: Optional[str]) -> List[str]:
    if player:
        return [f"--player={player}", op.value]
    return [op.value]


def is_no_players_message(text: str) -> bool:
    low = (text or "").strip().lower()
    return "no players" in low or "no player could handle" in low
