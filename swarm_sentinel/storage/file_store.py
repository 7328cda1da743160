"""
Swarm Sentinel - Local File Store

Fichiers d'un répertoire local, écrits par remplacement atomique.
Sert au point de montage NFS comme au cache local.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional


class UnreadableFileError(OSError):
    """Fichier présent mais dont le contenu n'est pas du texte UTF-8."""


class LocalFileStore:
    """Lecture/écriture idempotente de fichiers texte sous root."""

    def __init__(self, root: str) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, name: str) -> Path:
        if not name or "/" in name or name in (".", ".."):
            raise ValueError(f"Invalid shared file name: {name!r}")
        return self._root / name

    def read(self, name: str) -> Optional[str]:
        """
        Retourne le contenu, ou None si le fichier n'existe pas.

        Raises:
            UnreadableFileError: Si le contenu n'est pas de l'UTF-8 valide
        """
        path = self.path_for(name)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            raise UnreadableFileError(f"{path}: invalid UTF-8 content ({e.reason})") from e

    def write(self, name: str, content: str) -> bool:
        """
        Écrit content si différent du contenu actuel.

        Returns:
            True si le fichier a été (ré)écrit
        """
        try:
            current = self.read(name)
        except UnreadableFileError:
            # Contenu corrompu: remplacé
            current = None
        if current == content:
            return False

        self._root.mkdir(parents=True, exist_ok=True)
        path = self.path_for(name)
        fd, tmp_path = tempfile.mkstemp(dir=str(self._root), prefix=f".{name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        return True
