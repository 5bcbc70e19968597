"""Write generated images to disk so the UI can display and download them."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, Optional

from modules.utils.image_utils import decode_image_reference, guess_extension

logger = logging.getLogger(__name__)

_FOLDER_PATTERN = re.compile(r"[^A-Za-z0-9_.-]+")


class ExportService:
    """Handle saving generated assets.

    ``export``/``prune`` keep one file per key (a history entry id, the
    current source or result) and remove files whose key is no longer shown.
    """

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)
        self._exported: Dict[str, Path] = {}

    def save_image(
        self, image_reference: str, file_name: str, folder: Optional[str] = None
    ) -> Path:
        """Decode a ``data:`` URL and persist it, returning the file path.

        ``folder`` keeps files with the same name apart (e.g. one per history
        entry). Raises FormatError for malformed references and OSError on
        write failures.
        """
        media_type, data = decode_image_reference(image_reference)
        name = Path(file_name).name or "image"
        if not Path(name).suffix:
            name += guess_extension(media_type)

        target_dir = self._folder_path(folder) if folder else self.output_dir
        target_dir.mkdir(parents=True, exist_ok=True)

        path = target_dir / name
        path.write_bytes(data)
        logger.info("Saved %s (%d bytes)", path, len(data))
        return path

    def export(self, key: str, image_reference: str, file_name: str) -> Path:
        """Save once per ``key``; later calls return the cached path."""
        cached = self._exported.get(key)
        if cached is not None and cached.exists():
            return cached
        path = self.save_image(image_reference, file_name, folder=key)
        self._exported[key] = path
        return path

    def prune(self, keep: Iterable[str]) -> None:
        """Delete exported files whose key is not in ``keep``."""
        wanted = set(keep)
        for key in [key for key in self._exported if key not in wanted]:
            path = self._exported.pop(key)
            try:
                path.unlink(missing_ok=True)
                folder = path.parent
                if folder != self.output_dir and not any(folder.iterdir()):
                    folder.rmdir()
            except OSError as exc:
                logger.warning("Could not remove %s: %s", path, exc)

    def exported_keys(self) -> tuple[str, ...]:
        return tuple(self._exported)

    def _folder_path(self, folder: str) -> Path:
        return self.output_dir / (_FOLDER_PATTERN.sub("-", folder).strip("-.") or "misc")
