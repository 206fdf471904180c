# Checkpoint stores
# Last emitted event timestamp per (log group, log stream).

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional
import json
import logging
import os
import threading

from .errors import CheckpointError


class CheckpointStore(ABC):

    @abstractmethod
    def get(self, group: str, stream: str) -> Optional[int]:
        pass

    @abstractmethod
    def set(self, group: str, stream: str, timestampMs: int) -> None:
        pass

    @abstractmethod
    def reset(self) -> None:
        pass


class MemoryCheckpointStore(CheckpointStore):

    def __init__(self):
        self._lock = threading.Lock()
        self._checkpoints: Dict[str, Dict[str, int]] = {}

    def get(self, group: str, stream: str) -> Optional[int]:
        with self._lock:
            return self._checkpoints.get(group, {}).get(stream)

    def set(self, group: str, stream: str, timestampMs: int) -> None:
        with self._lock:
            self._checkpoints.setdefault(group, {})[stream] = int(timestampMs)

    def reset(self) -> None:
        with self._lock:
            self._checkpoints.clear()

    def snapshot(self) -> Dict[str, Dict[str, int]]:
        with self._lock:
            return {group: dict(streams) for group, streams in self._checkpoints.items()}


class FileCheckpointStore(MemoryCheckpointStore):
    """
    JSON-file backed checkpoint store that survives restarts.

    File layout: {"<log group>": {"<log stream>": <timestamp ms>}}. The whole
    file is rewritten through a temp file and os.replace on every set.
    """

    def __init__(self, path: str):
        super().__init__()
        self.path = Path(path)
        self.logger = logging.getLogger(self.__class__.__name__)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            self.logger.info(f"No checkpoint file at {self.path}, starting fresh")
            return

        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CheckpointError(f"Unable to read checkpoint file {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise CheckpointError(f"Checkpoint file {self.path} must contain a JSON object")

        for group, streams in data.items():
            if not isinstance(streams, dict):
                raise CheckpointError(f"Checkpoint entry for group {group!r} must be an object")
            for stream, timestampMs in streams.items():
                # bool is an int subclass; true/false are not timestamps
                if isinstance(timestampMs, bool):
                    timestampMs = None
                try:
                    self._checkpoints.setdefault(group, {})[stream] = int(timestampMs)
                except (TypeError, ValueError) as e:
                    raise CheckpointError(
                        f"Checkpoint for {group}/{stream} in {self.path} is not a timestamp: {timestampMs!r}",
                        group,
                        stream
                    ) from e

        self.logger.info(f"Loaded {sum(len(s) for s in self._checkpoints.values())} checkpoints from {self.path}")

    def set(self, group: str, stream: str, timestampMs: int) -> None:
        with self._lock:
            updated = {g: dict(s) for g, s in self._checkpoints.items()}
            updated.setdefault(group, {})[stream] = int(timestampMs)
            self._write(updated)
            self._checkpoints = updated

    def reset(self) -> None:
        with self._lock:
            self._write({})
            self._checkpoints = {}

    def _write(self, checkpoints: Dict[str, Dict[str, int]]) -> None:
        # Caller holds the lock. Memory is only updated once the file is in place.
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tempPath = self.path.with_suffix(self.path.suffix + '.tmp')
            with open(tempPath, 'w') as f:
                json.dump(checkpoints, f, indent=2, sort_keys=True)
            os.replace(tempPath, self.path)
        except OSError as e:
            raise CheckpointError(f"Unable to write checkpoint file {self.path}: {e}") from e
