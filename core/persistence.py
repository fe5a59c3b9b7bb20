"""
Persistence Module - Atomic JSON snapshots of session state
===========================================================

This module provides snapshot storage including:
- Periodic saves gated by a save interval
- Write-to-temp-then-rename so readers never see a partial snapshot
- Sweeping temp files left behind by an interrupted save
- Load-and-merge with the configured channel list on startup
"""

import json
import os
import random
import time
from pathlib import Path
from typing import Callable, Iterable, Optional

from .exceptions import SnapshotError
from .logging import get_logger
from .state import SessionState

logger = get_logger("core.persistence")

TEMP_SUFFIX = ".temp"


class SnapshotStore:
    """
    Snapshot manager for the session state.

    ``maybe_save`` is meant to be called on every loop iteration; it only
    writes once the save deadline has passed. The first deadline is one
    interval after construction.

    Attributes:
        state_dir (Path): Directory holding the snapshot and temp files
        snapshot_path (Path): Canonical snapshot file
        save_interval (float): Minimum seconds between saves

    Example:
        store = SnapshotStore("/home/bot/rulebot")
        state = store.load(["channel_a", "channel_b"])
        ...
        store.sweep_temp_files()
        store.maybe_save(state)
    """

    def __init__(
        self,
        state_dir: str,
        snapshot_name: str = "state.json",
        save_interval: float = 60.0,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None
    ):
        self.state_dir = Path(state_dir)
        self.snapshot_name = snapshot_name
        self.snapshot_path = self.state_dir / snapshot_name
        self.save_interval = save_interval
        self.clock = clock
        self.rng = rng or random.Random()
        self.next_save = self.clock() + self.save_interval

    # === Saving ===

    def sweep_temp_files(self) -> int:
        """
        Delete temp files left by earlier, interrupted saves.

        Returns:
            Number of files removed
        """
        if not self.state_dir.is_dir():
            return 0

        removed = 0
        for path in self.state_dir.iterdir():
            if path.suffix == TEMP_SUFFIX and path.is_file():
                path.unlink()
                removed += 1

        if removed:
            logger.info(f"Removed {removed} stale snapshot temp file(s)")
        return removed

    def maybe_save(self, state: SessionState) -> bool:
        """
        Save the snapshot if the save interval has elapsed.

        Returns:
            True if a snapshot was written
        """
        if self.next_save >= self.clock():
            return False
        self.save(state)
        return True

    def save(self, state: SessionState) -> Path:
        """
        Write the snapshot unconditionally.

        The state is serialized to a randomly named temp file in the state
        directory, flushed to disk, then renamed over the canonical file.

        Returns:
            Path of the snapshot file
        """
        self.state_dir.mkdir(parents=True, exist_ok=True)

        temp_path = self.state_dir / (
            f"{self.rng.getrandbits(32)}-{self.snapshot_name}{TEMP_SUFFIX}"
        )
        serialized = json.dumps(state.to_dict(), ensure_ascii=False, indent=2)

        with temp_path.open("w", encoding="utf-8") as handle:
            handle.write(serialized)
            handle.flush()
            os.fsync(handle.fileno())

        os.replace(temp_path, self.snapshot_path)
        self.next_save = self.clock() + self.save_interval

        logger.debug(
            "Snapshot saved",
            extra={"path": str(self.snapshot_path), "channels": len(state.channels)}
        )
        return self.snapshot_path

    def flush(self, state: SessionState) -> None:
        """Save immediately, e.g. on shutdown."""
        self.sweep_temp_files()
        self.save(state)

    # === Loading ===

    def read(self) -> Optional[SessionState]:
        """
        Read the snapshot without merging.

        Returns:
            The stored state, or None if no snapshot exists

        Raises:
            SnapshotError: If the snapshot exists but cannot be decoded
        """
        try:
            contents = self.snapshot_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise SnapshotError(
                f"Failed to read snapshot: {e}",
                {"path": str(self.snapshot_path)}
            )

        try:
            return SessionState.from_dict(json.loads(contents))
        except (ValueError, KeyError, TypeError, AttributeError, OverflowError) as e:
            raise SnapshotError(
                f"Snapshot is corrupt: {e}",
                {"path": str(self.snapshot_path)}
            )

    def load(
        self,
        channels: Iterable[str],
        prune: bool = False,
        **channel_defaults
    ) -> SessionState:
        """
        Load the snapshot and merge it with the configured channels.

        Args:
            channels: Configured channel names
            prune: Drop persisted channels that are no longer configured
            **channel_defaults: Passed to ``ChannelState.new`` for new channels

        Returns:
            Restored (or fresh) session state

        Raises:
            SnapshotError: If the snapshot exists but is malformed
        """
        channels = list(channels)
        now = self.clock()

        state = self.read()
        if state is None:
            logger.info(f"No snapshot at {self.snapshot_path}, creating new state")
            return SessionState.new(channels, now, **channel_defaults)

        added = state.merge(channels, now, prune=prune, **channel_defaults)
        logger.info(
            f"Restored snapshot with {len(state.channels)} channel(s)",
            extra={"added": added, "ignores": len(state.ignores)}
        )
        return state
