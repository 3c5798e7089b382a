"""Vault-backed note store: the only place the engine touches local files."""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from pathlib import Path

from voicenotes_sync.exceptions import FileSystemError

logger = logging.getLogger(__name__)


def normalize_path(rel_path: str) -> str:
    """Normalize a vault-relative path to forward slashes without dot segments."""
    cleaned = rel_path.replace("\\", "/").strip().strip("/")
    if not cleaned:
        return ""
    return posixpath.normpath(cleaned)


@dataclass
class NoteStore:
    """Reads and writes notes and binary assets under ``vault_dir``.

    All paths are vault-relative POSIX strings. ``OSError`` is wrapped in
    ``FileSystemError`` so callers see a single local-failure type.
    """

    vault_dir: Path

    def _validate_path(self, rel_path: str) -> Path:
        """Resolve a vault-relative path, rejecting anything that escapes the vault."""
        full_path = (self.vault_dir / normalize_path(rel_path)).resolve()
        if not full_path.is_relative_to(self.vault_dir.resolve()):
            msg = f"Path traversal detected: {rel_path}"
            raise FileSystemError(msg, rel_path)
        return full_path

    def exists(self, rel_path: str) -> bool:
        return self._validate_path(rel_path).exists()

    def ensure_directory(self, rel_path: str) -> None:
        full_path = self._validate_path(rel_path)
        if full_path.is_dir():
            return
        try:
            full_path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"Failed to create directory: {rel_path}"
            raise FileSystemError(msg, rel_path) from exc
        logger.debug("Created directory %s", rel_path)

    def read_text(self, rel_path: str) -> str:
        full_path = self._validate_path(rel_path)
        try:
            return full_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            msg = f"Failed to read text file: {rel_path}"
            raise FileSystemError(msg, rel_path) from exc

    def write_text(self, rel_path: str, content: str) -> None:
        full_path = self._validate_path(rel_path)
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_text(content, encoding="utf-8")
        except OSError as exc:
            msg = f"Failed to write text file: {rel_path}"
            raise FileSystemError(msg, rel_path) from exc

    def write_binary(self, rel_path: str, data: bytes) -> None:
        full_path = self._validate_path(rel_path)
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_bytes(data)
        except OSError as exc:
            msg = f"Failed to write binary file: {rel_path}"
            raise FileSystemError(msg, rel_path) from exc

    def delete(self, rel_path: str) -> bool:
        """Delete a file. Returns True if it existed."""
        full_path = self._validate_path(rel_path)
        if not full_path.is_file():
            return False
        try:
            full_path.unlink()
        except OSError as exc:
            msg = f"Failed to delete file: {rel_path}"
            raise FileSystemError(msg, rel_path) from exc
        return True

    def list_markdown(self, rel_dir: str) -> list[str]:
        """Recursively list markdown notes under ``rel_dir`` (vault-relative, sorted)."""
        root = self._validate_path(rel_dir)
        if not root.is_dir():
            return []
        vault_root = self.vault_dir.resolve()
        return sorted(
            path.relative_to(vault_root).as_posix()
            for path in root.rglob("*.md")
            if path.is_file()
        )
