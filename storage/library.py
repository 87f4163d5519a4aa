# storage/library.py
import json
import logging
import os
from typing import List

from notes.errors import NotFoundError, StorageError
from notes.model import Song
from notes.record import song_from_record, song_to_record


class SongLibrary:
    """One JSON file per song under ``directory``.

    The in-memory Song stays the source of truth: a failed save raises StorageError
    and leaves the caller's snapshot alone so it can retry.
    """
    def __init__(self, directory: str):
        self.directory = os.path.abspath(directory)

    def _path(self, song_id: str) -> str:
        safe = "".join(c for c in song_id if c.isalnum() or c in "-_")
        if not safe:
            raise NotFoundError(f"invalid song id {song_id!r}")
        return os.path.join(self.directory, f"{safe}.json")

    def load(self, song_id: str) -> Song:
        path = self._path(song_id)
        if not os.path.exists(path):
            raise NotFoundError(f"song {song_id!r} not in library")
        try:
            with open(path, "r", encoding="utf-8") as f:
                obj = json.load(f)
            return song_from_record(obj, keep_ids=True)
        except (OSError, ValueError) as e:  # JSONDecodeError、UnicodeDecodeError、ValidationError
            raise StorageError(f"cannot read {path}: {e}") from e

    def save(self, song: Song):
        path = self._path(song.id)
        tmp = path + ".tmp"
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(song_to_record(song, with_ids=True), f, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
        except OSError as e:
            raise StorageError(f"cannot write {path}: {e}") from e
        logging.debug("Saved song %s (%d notes)", song.id, len(song.notes))

    def list(self) -> List[Song]:
        if not os.path.isdir(self.directory):
            return []
        songs = []
        try:
            names = sorted(os.listdir(self.directory))
        except OSError as e:
            raise StorageError(f"cannot list {self.directory}: {e}") from e
        for name in names:
            if not name.endswith(".json"):
                continue
            try:
                songs.append(self.load(name[:-5]))
            except StorageError:
                logging.warning("Skipping unreadable library entry %s", name, exc_info=True)
        songs.sort(key=lambda s: s.last_modified, reverse=True)
        return songs

    def delete(self, song_id: str):
        path = self._path(song_id)
        if not os.path.exists(path):
            raise NotFoundError(f"song {song_id!r} not in library")
        try:
            os.remove(path)
        except OSError as e:
            raise StorageError(f"cannot delete {path}: {e}") from e
        logging.info("Deleted song %s", song_id)
