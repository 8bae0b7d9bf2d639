# services/persistence.py
"""
Robust JSON persistence for the game state.

- Uses Kivy's App to place the save file under the app's user_data_dir.
- Falls back to a local ./.userdata/save.json path when no app is running.
- Writes are atomic: data is written to a temporary file in the same directory
  and then os.replace() swaps it into place.
- A corrupt save is logged and treated as no save; a failing disk is logged
  and the game keeps running in memory.
"""

from __future__ import annotations

import json
import os
import random
import time
from tempfile import NamedTemporaryFile
from typing import Any, Callable, Dict, Optional

from kivy.app import App
from kivy.logger import Logger

from services.state import GameState


class Persistence:
    """JSON-backed persistence layer for GameState with atomic writes."""

    def __init__(self, path: Optional[str] = None) -> None:
        """Initialize and cache the save path; `path` overrides the default."""
        self._cached_path: str | None = path
        # Precompute so tests that inspect path don't trigger directory creation.
        if self._cached_path is None:
            self._cached_path = self._compute_path()

    def _compute_path(self) -> str:
        """Compute the save file path based on running Kivy app or local fallback."""
        app = App.get_running_app()
        if app is not None and getattr(app, "user_data_dir", None):
            base = app.user_data_dir
        else:
            base = os.path.join(".", ".userdata")
        return os.path.join(base, "save.json")

    @property
    def path(self) -> str:
        return self._cached_path or self._compute_path()

    def _save_path(self) -> str:
        """Return the save file path and ensure its parent directory exists."""
        path = self.path
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._cached_path = path
        return path

    def save(self, state: GameState, now: Optional[float] = None) -> bool:
        """
        Serialize and atomically persist the provided GameState.

        Writes UTF-8 JSON with indent=2 to a temp file in the save directory,
        then replaces the final file in a single operation.

        Returns:
            bool: True on success, False if the write failed (logged).
        """
        temp_name: Optional[str] = None
        try:
            path = self._save_path()
            directory = os.path.dirname(path) or "."
            payload: Dict[str, Any] = state.to_dict(now)

            with NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=directory,
                prefix=".save-",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                temp_name = tmp.name
                json.dump(payload, tmp, indent=2, ensure_ascii=False)
                tmp.flush()
                os.fsync(tmp.fileno())

            os.replace(temp_name, path)
            return True
        except (OSError, TypeError, ValueError):
            Logger.exception("Persistence: failed to save game state to %s", self.path)
            if temp_name and os.path.exists(temp_name):
                try:
                    os.remove(temp_name)
                except OSError:
                    Logger.warning("Persistence: could not remove temp file %s", temp_name)
            return False

    def read(self) -> Optional[Dict[str, Any]]:
        """
        Return the raw save document, or None when there is none.

        Unreadable or corrupt files are logged and reported as None.
        """
        path = self.path
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            Logger.exception("Persistence: failed to read %s", path)
            return None
        if not isinstance(data, dict):
            Logger.error("Persistence: %s does not hold a JSON object", path)
            return None
        return data

    def load(
        self,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ) -> Optional[GameState]:
        """
        Load the saved GameState and credit the production missed while away.

        The whole document is restored first; the offline credit is then
        computed from that restored state (see GameState.apply_offline_progress).

        Returns:
            GameState on success, None when there is no usable save.
        """
        data = self.read()
        if data is None:
            return None
        try:
            state = GameState.from_dict(data, clock=clock, rng=rng)
        except (KeyError, TypeError, ValueError, AttributeError, ArithmeticError):
            Logger.exception("Persistence: save at %s is malformed, starting fresh", self.path)
            return None
        last_save = data.get("last_save")
        if isinstance(last_save, (int, float)) and not isinstance(last_save, bool):
            state.apply_offline_progress(last_save / 1000.0)
        return state
