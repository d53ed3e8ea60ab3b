"""
YAML-backed document store.

Each collection is one YAML file mapping document id to document. All writes
go through a single file lock so concurrent requests never interleave a
read-modify-write on the same collection. Files are replaced atomically, so
reads need no lock and always see either the old or the new content.
"""
import copy
import logging
import os
import tempfile
from typing import Dict, List, Optional

import yaml
from filelock import FileLock

logger = logging.getLogger(__name__)


class DocumentNotFound(KeyError):
    """Raised by update() when the target document does not exist."""


class DocumentStore:
    def __init__(self, data_dir: str, lock_timeout: int = 10):
        self.data_dir = data_dir
        os.makedirs(data_dir, exist_ok=True)
        self._lock = FileLock(os.path.join(data_dir, '.lock'), timeout=lock_timeout)

    def _path(self, collection: str) -> str:
        return os.path.join(self.data_dir, f'{collection}.yaml')

    def _load(self, collection: str) -> Dict[str, Dict]:
        path = self._path(collection)
        if not os.path.exists(path):
            return {}
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.warning(f'Failed to parse {path}: {e}')
            return {}
        if not isinstance(data, dict):
            return {}
        return data

    def _save(self, collection: str, docs: Dict[str, Dict]):
        """Write to a temp file and swap it in, so readers never see a partial file."""
        fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, prefix=f'.{collection}.', suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                yaml.safe_dump(docs, f, default_flow_style=False, sort_keys=False)
            os.replace(tmp_path, self._path(collection))
        except BaseException:
            os.remove(tmp_path)
            raise

    def get(self, collection: str, doc_id: str) -> Optional[Dict]:
        """Return a copy of the document, or None if it does not exist."""
        doc = self._load(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def list(self, collection: str) -> List[Dict]:
        """Return every document of a collection with its id filled in."""
        result = []
        for doc_id, doc in self._load(collection).items():
            doc = dict(doc or {})
            doc.setdefault('id', doc_id)
            result.append(doc)
        return result

    def set(self, collection: str, doc_id: str, data: Dict, merge: bool = False) -> Dict:
        """Create or replace a document. With merge=True, only the given fields change."""
        with self._lock:
            docs = self._load(collection)
            if merge and isinstance(docs.get(doc_id), dict):
                doc = {**docs[doc_id], **data}
            else:
                doc = dict(data)
            docs[doc_id] = doc
            self._save(collection, docs)
        return copy.deepcopy(doc)

    def update(self, collection: str, doc_id: str, data: Dict) -> Dict:
        """Merge fields into an existing document."""
        with self._lock:
            docs = self._load(collection)
            if doc_id not in docs:
                raise DocumentNotFound(f'{collection}/{doc_id}')
            docs[doc_id] = {**(docs[doc_id] or {}), **data}
            self._save(collection, docs)
            return copy.deepcopy(docs[doc_id])

    def set_many(self, collection: str, docs_by_id: Dict[str, Dict], replace: bool = False):
        """Write several documents in one locked pass."""
        with self._lock:
            docs = {} if replace else self._load(collection)
            for doc_id, data in docs_by_id.items():
                docs[doc_id] = dict(data)
            self._save(collection, docs)

    def seed(self, collection: str, docs_by_id: Dict[str, Dict]) -> bool:
        """
        Write docs_by_id only if the collection is still empty.

        The emptiness check happens under the lock, so a collection that
        another writer has filled in the meantime is never overwritten.
        Returns True if the documents were written.
        """
        with self._lock:
            if self._load(collection):
                return False
            self._save(collection, {doc_id: dict(data) for doc_id, data in docs_by_id.items()})
        return True

    def locked(self):
        """Hold the store lock across a read-modify-write spanning several calls."""
        return self._lock

    def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns False if it was not there."""
        with self._lock:
            docs = self._load(collection)
            if doc_id not in docs:
                return False
            del docs[doc_id]
            self._save(collection, docs)
        return True

    def clear(self, collection: str):
        with self._lock:
            path = self._path(collection)
            if os.path.exists(path):
                os.remove(path)

    def mtimes(self, collections: List[str]) -> Dict[str, float]:
        """Modification time per collection file, 0.0 when missing."""
        result = {}
        for name in collections:
            path = self._path(name)
            result[name] = os.path.getmtime(path) if os.path.exists(path) else 0.0
        return result
