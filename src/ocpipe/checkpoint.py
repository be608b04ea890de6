"""JSON checkpoint files for pipeline state.

One file per (pipeline name, session id)::

    {directory}/{name}_{session_id}.json

No locking: a session id is driven by one pipeline at a time and the
last writer wins.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import TypeVar

import pydantic

from ocpipe.exceptions import CheckpointError
from ocpipe.models.state import BaseState

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=BaseState)

# create_session_id() format
_SESSION_ID_RE = re.compile(r"\d{8}_\d{6}")


class CheckpointStore:
    """Read and write pipeline checkpoints in a directory."""

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self.directory = Path(directory)

    def path_for(self, name: str, session_id: str) -> Path:
        return self.directory / f"{name}_{session_id}.json"

    def save(self, name: str, state: BaseState) -> Path:
        """Write ``state`` and return the file path.

        The file is written to a temporary sibling and renamed into place,
        so an interrupted write never leaves a truncated checkpoint.
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(name, state.session_id)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(state.model_dump_json(indent=2), encoding="utf-8")
        os.replace(tmp, path)
        logger.debug("Checkpoint saved: %s", path)
        return path

    def load(
        self,
        name: str,
        session_id: str,
        state_cls: type[S] = BaseState,  # type: ignore[assignment]
    ) -> S | None:
        """Load a checkpoint, or None if it does not exist.

        Raises:
            CheckpointError: If the file exists but is unreadable or invalid.
        """
        path = self.path_for(name, session_id)
        return self.load_path(path, state_cls)

    def load_path(self, path: str | os.PathLike[str], state_cls: type[S] = BaseState) -> S | None:  # type: ignore[assignment]
        path = Path(path)
        if not path.exists():
            return None
        try:
            return state_cls.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, pydantic.ValidationError) as exc:
            raise CheckpointError(str(path), str(exc)) from exc

    def list(self, name: str) -> list[Path]:
        """Checkpoint files for ``name``, newest first.

        Session ids are timestamps, so name order is time order. Files whose
        remainder is not a ``YYYYMMDD_HHMMSS`` session id are ignored.
        """
        if not self.directory.is_dir():
            return []
        prefix = f"{name}_"
        files = [
            p
            for p in self.directory.iterdir()
            if p.is_file()
            and p.name.startswith(prefix)
            and p.name.endswith(".json")
            and _SESSION_ID_RE.fullmatch(self.session_id_of(name, p))
        ]
        return sorted(files, key=lambda p: p.name, reverse=True)

    @staticmethod
    def session_id_of(name: str, path: str | os.PathLike[str]) -> str:
        """Recover the session id from a checkpoint file name."""
        stem = Path(path).name[: -len(".json")]
        return stem[len(name) + 1 :]
