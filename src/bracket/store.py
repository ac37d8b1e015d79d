"""
YAML-backed tournament store.

Layout under the data directory::

    tournaments.yaml          registry: {'active': <id>, 'tournaments': [...]}
    tournaments/<id>.yaml     one aggregate per tournament

Every read-modify-write goes through ``transaction()``, which holds an
in-process lock and a file lock for the whole cycle.
"""
import logging
import os
import re
import tempfile
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional

import yaml
from filelock import FileLock

from bracket.errors import TournamentNotFound
from bracket.models import Tournament

logger = logging.getLogger(__name__)

LOCK_TIMEOUT_SECONDS = 10


def slugify(name: str) -> str:
    """Convert tournament name to filesystem-safe slug."""
    slug = name.lower().strip()
    slug = re.sub(r'[^a-z0-9\s-]', '', slug)
    slug = re.sub(r'[\s-]+', '-', slug)
    slug = slug.strip('-')
    return slug or 'tournament'


def _dump(data: dict) -> str:
    return yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)


def _atomic_write(path: str, content: str):
    """Write to a temp file in the same directory, then swap it in."""
    directory = os.path.dirname(path)
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.tmp-', suffix='.yaml')
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


class TournamentStore:
    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self.tournaments_dir = os.path.join(data_dir, 'tournaments')
        self.registry_file = os.path.join(data_dir, 'tournaments.yaml')
        os.makedirs(self.tournaments_dir, exist_ok=True)
        self._guard = threading.Lock()
        self._local_locks = {}
        self._file_locks = {}
        self._registry_lock = FileLock(self.registry_file + '.lock', timeout=LOCK_TIMEOUT_SECONDS)

    def _path(self, tournament_id: str) -> str:
        if not re.match(r'^[A-Za-z0-9_-]+$', str(tournament_id)):
            raise TournamentNotFound()
        return os.path.join(self.tournaments_dir, f'{tournament_id}.yaml')

    def _locks_for(self, tournament_id: str):
        with self._guard:
            if tournament_id not in self._local_locks:
                self._local_locks[tournament_id] = threading.RLock()
                self._file_locks[tournament_id] = FileLock(
                    self._path(tournament_id) + '.lock', timeout=LOCK_TIMEOUT_SECONDS)
            return self._local_locks[tournament_id], self._file_locks[tournament_id]

    def exists(self, tournament_id: str) -> bool:
        try:
            return os.path.exists(self._path(tournament_id))
        except TournamentNotFound:
            return False

    def load(self, tournament_id: str) -> Tournament:
        path = self._path(tournament_id)
        if not os.path.exists(path):
            raise TournamentNotFound(f'Tournament {tournament_id} not found.')
        with open(path, 'r', encoding='utf-8') as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                logger.error(f'Failed to parse {path}: {e}')
                raise
        if not data:
            raise TournamentNotFound(f'Tournament {tournament_id} not found.')
        return Tournament.from_dict(data)

    def save(self, tournament: Tournament) -> bool:
        """
        Persist the aggregate atomically.

        Returns False without touching the file when nothing changed.
        """
        path = self._path(tournament.id)
        content = _dump(tournament.to_dict())
        local_lock, file_lock = self._locks_for(tournament.id)
        with local_lock, file_lock:
            if os.path.exists(path):
                with open(path, 'r', encoding='utf-8') as f:
                    if f.read() == content:
                        return False
            _atomic_write(path, content)
        return True

    @contextmanager
    def transaction(self, tournament_id: str):
        """
        Load, yield for mutation, and save on a clean exit.

        The tournament stays locked for the whole block; an exception leaves
        the stored aggregate unchanged.
        """
        local_lock, file_lock = self._locks_for(tournament_id)
        with local_lock, file_lock:
            tournament = self.load(tournament_id)
            yield tournament
            self.save(tournament)

    # Registry of tournaments and the current pointer

    def load_registry(self) -> dict:
        if not os.path.exists(self.registry_file):
            return {'active': None, 'tournaments': []}
        try:
            with open(self.registry_file, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
                return data if data else {'active': None, 'tournaments': []}
        except yaml.YAMLError as e:
            logger.warning(f'Failed to parse {self.registry_file}: {e}')
            return {'active': None, 'tournaments': []}

    def _save_registry(self, data: dict):
        _atomic_write(self.registry_file, _dump(data))

    def create(self, tournament: Tournament, make_current: bool = True) -> Tournament:
        with self._registry_lock:
            data = self.load_registry()
            data.setdefault('tournaments', [])
            base_id = tournament.id or slugify(tournament.name)
            taken = {t['id'] for t in data['tournaments']}
            new_id, counter = base_id, 2
            while new_id in taken or self.exists(new_id):
                new_id = f'{base_id}-{counter}'
                counter += 1
            tournament.id = new_id
            self.save(tournament)
            data['tournaments'].append({
                'id': new_id,
                'name': tournament.name,
                'created': datetime.now().isoformat(),
            })
            if make_current or not data.get('active'):
                data['active'] = new_id
            self._save_registry(data)
        logger.info(f'Created tournament {new_id} ({tournament.name})')
        return tournament

    def list_ids(self) -> List[str]:
        return [t['id'] for t in self.load_registry().get('tournaments', [])]

    def get_current(self) -> Optional[str]:
        return self.load_registry().get('active')

    def set_current(self, tournament_id: str):
        if not self.exists(tournament_id):
            raise TournamentNotFound(f'Tournament {tournament_id} not found.')
        with self._registry_lock:
            data = self.load_registry()
            data['active'] = tournament_id
            self._save_registry(data)
