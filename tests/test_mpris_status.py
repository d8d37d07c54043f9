"""Parsing of `playerctl metadata --format` output."""

from __future__ import annotations

import pytest

import mpris_cli
from models import ParseError, PlaybackStatus, TransportOp
from mpris_status import parse_metadata, parse_position_ms, parse_status_word

SEP = mpris_cli.FIELD_SEP


def line(*fields: str) -> str:
    return SEP.join(fields)


def test_parse_two_players() -> None:
    text = "\n".join(
        [
            line("spotify", "Playing", "Song | with pipes", "Band", "https://i.scdn.co/x", "61500000"),
            line("firefox.instance_1_42", "Paused", "Video", "", "", ""),
        ]
    )
    players = parse_metadata(text)

    assert [p.player for p in players] == ["spotify", "firefox.instance_1_42"]
    assert players[0].status is PlaybackStatus.PLAYING
    assert players[0].title == "Song | with pipes"
    assert players[0].position_ms == 61500
    assert players[1].status is PlaybackStatus.PAUSED
    assert players[1].position_ms == 0


def test_empty_output_means_no_players() -> None:
    assert parse_metadata("") == []
    assert parse_metadata("\n\n") == []


@pytest.mark.parametrize(
    "text",
    [
        "spotify\tPlaying\tSong",
        line("spotify", "Playing", "a", "b", "c"),
        line("", "Playing", "a", "b", "c", "0"),
        line("spotify", "Buffering", "a", "b", "c", "0"),
        line("spotify", "Playing", "a", "b", "c", "soon"),
        line("spotify", "Playing", "a", "b", "c", "0") + "\n" + line("spotify", "Paused", "a", "b", "c", "0"),
    ],
    ids=["no-separators", "short", "no-name", "bad-status", "bad-position", "duplicate"],
)
def test_garbled_metadata_raises(text: str) -> None:
    with pytest.raises(ParseError):
        parse_metadata(text)


def test_status_words() -> None:
    assert parse_status_word(" playing ") is PlaybackStatus.PLAYING
    assert parse_status_word("Stopped") is PlaybackStatus.STOPPED
    assert parse_status_word("") is PlaybackStatus.NONE


def test_position_is_microseconds() -> None:
    assert parse_position_ms("1500") == 1
    assert parse_position_ms("2000000.0") == 2000
    with pytest.raises(ParseError):
        parse_position_ms("-5")


def test_transport_args_pin_the_player() -> None:
    assert mpris_cli.transport_args(TransportOp.PLAY_PAUSE, "spotify") == ["--player=spotify", "play-pause"]
    assert mpris_cli.transport_args(TransportOp.NEXT, None) == ["next"]


def test_no_players_message() -> None:
    assert mpris_cli.is_no_players_message("No players found\n")
    assert mpris_cli.is_no_players_message("No player could handle this command")
    assert not mpris_cli.is_no_players_message("Connection refused")
