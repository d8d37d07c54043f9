# store_config.py
from __future__ import annotations

import configparser
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


DEFAULT_CONFIG_TEXT = """\
[Controller]
poll_interval_ms = 500
debounce_ms = 80
corrective_cooldown_ms = 1000
command_timeout_ms = 1500
failure_threshold = 3
worker_threads = 2
volume_step = 0.05

[Tools]
wpctl = wpctl
playerctl = playerctl

[Logging]
level = INFO
"""


def user_config_dir(app_name: str) -> Path:
    # wpctl and playerctl only exist on Linux desktops; XDG is the only layout.
    base = os.environ.get("XDG_CONFIG_HOME", "").strip()
    return (Path(base) if base else Path.home() / ".config") / app_name


@dataclass(frozen=True)
class ControllerConfig:
    poll_interval_ms: int = 500
    debounce_ms: int = 80
    corrective_cooldown_ms: int = 1000
    command_timeout_ms: int = 1500
    failure_threshold: int = 3
    worker_threads: int = 2
    volume_step: float = 0.05
    wpctl: str = "wpctl"
    playerctl: str = "playerctl"
    log_level: str = "INFO"

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000.0

    @property
    def debounce(self) -> float:
        return self.debounce_ms / 1000.0

    @property
    def corrective_cooldown(self) -> float:
        return self.corrective_cooldown_ms / 1000.0

    @property
    def command_timeout(self) -> float:
        return self.command_timeout_ms / 1000.0


_NUMERIC_KEYS = {
    "poll_interval_ms": (int, 1),
    "debounce_ms": (int, 0),
    "corrective_cooldown_ms": (int, 0),
    "command_timeout_ms": (int, 1),
    "failure_threshold": (int, 1),
    "worker_threads": (int, 1),
    "volume_step": (float, 0.0),
}


def config_from_parser(cfg: configparser.ConfigParser) -> ControllerConfig:
    values = {}

    for key, (cast, minimum) in _NUMERIC_KEYS.items():
        raw = cfg.get("Controller", key, fallback="").strip()
        if not raw:
            continue
        try:
            v = cast(raw)
        except ValueError:
            logger.warning("ignoring [Controller] %s = %r: not a number", key, raw)
            continue
        if v < minimum:
            logger.warning("ignoring [Controller] %s = %r: below %s", key, raw, minimum)
            continue
        values[key] = v

    for key in ("wpctl", "playerctl"):
        raw = cfg.get("Tools", key, fallback="").strip()
        if raw:
            values[key] = raw

    level = cfg.get("Logging", "level", fallback="").strip().upper()
    if level:
        if isinstance(logging.getLevelName(level), int):
            values["log_level"] = level
        else:
            logger.warning("ignoring [Logging] level = %r", level)

    return ControllerConfig(**values)


@dataclass(frozen=True)
class ConfigStore:
    app_name: str = "hushbar"
    filename: str = "hushbar.cfg"
    base_dir: str = ""

    @property
    def dir_path(self) -> Path:
        if self.base_dir:
            return Path(self.base_dir)
        return user_config_dir(self.app_name)

    @property
    def file_path(self) -> Path:
        return self.dir_path / self.filename

    def ensure_exists(self) -> None:
        self.dir_path.mkdir(parents=True, exist_ok=True)
        if not self.file_path.exists():
            self.file_path.write_text(DEFAULT_CONFIG_TEXT, encoding="utf-8")

    def load(self) -> configparser.ConfigParser:
        self.ensure_exists()
        cfg = configparser.ConfigParser()
        cfg.read_string(DEFAULT_CONFIG_TEXT)
        cfg.read(self.file_path, encoding="utf-8")
        return cfg

    def save(self, cfg: configparser.ConfigParser) -> None:
        self.ensure_exists()
        with self.file_path.open("w", encoding="utf-8") as f:
            cfg.write(f)

    def controller_config(self) -> ControllerConfig:
        try:
            cfg = self.load()
        except (OSError, configparser.Error) as e:
            logger.warning("cannot read %s, using defaults: %s", self.file_path, e)
            return ControllerConfig()
        return config_from_parser(cfg)
