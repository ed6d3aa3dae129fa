from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

from config_utils import read_bool_env, read_choice_env, read_str_env

TARGET_LANGUAGES = ("uk", "ru")
COACH_LANGUAGES = ("same", "uk", "en", "ru")
PANEL_POSITIONS = ("left", "center", "right")
_NEVER_PERSISTED = {"api_key"}


@dataclass
class AssistSettings:
    enabled: bool = True
    target_language: str = "uk"
    model: str = "gpt-4o-mini"
    coach_enabled: bool = True
    coach_language: str = "same"
    api_key: str = ""
    panel_visible: bool = True
    panel_position: str = "right"

    @classmethod
    def from_env(cls) -> "AssistSettings":
        return cls(
            enabled=read_bool_env("ASSIST_ENABLED", True),
            target_language=read_choice_env("TARGET_LANGUAGE", "uk", TARGET_LANGUAGES),
            model=read_str_env("ASSIST_MODEL", "gpt-4o-mini"),
            coach_enabled=read_bool_env("COACH_ENABLED", True),
            coach_language=read_choice_env("COACH_LANGUAGE", "same", COACH_LANGUAGES),
            api_key=(os.getenv("OPENAI_API_KEY") or "").strip(),
        )

    def merged(self, overrides: dict[str, Any]) -> "AssistSettings":
        known = {item.name: item for item in fields(self)}
        accepted: dict[str, Any] = {}
        for name, value in overrides.items():
            if name not in known or name in _NEVER_PERSISTED:
                continue
            current = getattr(self, name)
            if isinstance(current, bool):
                if isinstance(value, bool):
                    accepted[name] = value
            elif isinstance(value, str) and value.strip():
                accepted[name] = value.strip()
        merged = replace(self, **accepted)
        if merged.target_language not in TARGET_LANGUAGES:
            merged.target_language = self.target_language
        if merged.coach_language not in COACH_LANGUAGES:
            merged.coach_language = "same"
        if merged.panel_position not in PANEL_POSITIONS:
            merged.panel_position = "right"
        return merged


class MemorySettingsStore:
    def __init__(self, settings: Optional[AssistSettings] = None) -> None:
        self._settings = settings or AssistSettings()

    def snapshot(self) -> AssistSettings:
        return replace(self._settings)

    def update(self, **changes: Any) -> AssistSettings:
        unknown = set(changes) - {item.name for item in fields(AssistSettings)}
        if unknown:
            raise KeyError(f"Unknown settings: {', '.join(sorted(unknown))}")
        self._settings = replace(self._settings, **changes)
        return self.snapshot()


class SettingsStore:
    """JSON-file settings read fresh on every snapshot so edits apply to the next utterance."""

    def __init__(self, path: str, defaults: Optional[AssistSettings] = None) -> None:
        self._path = Path(path)
        self._defaults = defaults or AssistSettings.from_env()

    @property
    def path(self) -> Path:
        return self._path

    def snapshot(self) -> AssistSettings:
        return self._defaults.merged(self._read())

    def update(self, **changes: Any) -> AssistSettings:
        unknown = set(changes) - {item.name for item in fields(AssistSettings)}
        if unknown:
            raise KeyError(f"Unknown settings: {', '.join(sorted(unknown))}")
        stored = self._read()
        stored.update({name: value for name, value in changes.items() if name not in _NEVER_PERSISTED})
        self._write(stored)
        if "api_key" in changes:
            self._defaults = replace(self._defaults, api_key=str(changes["api_key"] or "").strip())
        return self.snapshot()

    def _read(self) -> dict[str, Any]:
        if not self._path.is_file():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            logging.warning("settings_read_failed path=%s error=%s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, ensure_ascii=False, indent=2)

