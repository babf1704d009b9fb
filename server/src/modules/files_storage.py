from datetime import datetime
from io import BytesIO
from typing import Any, Optional

from gridfs import GridFS
from gridfs.errors import NoFile
from pymongo.database import Database

from db_mongo import get_db, is_mock_uri


class _MemoryGridOut(BytesIO):
    def __init__(self, data: bytes, content_type: str):
        super().__init__(data)
        self.content_type = content_type


class FileBlobStorage:
    """Bytes of uploaded files, keyed by the cms file id."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db if db is not None else get_db()
        self._is_mock = is_mock_uri()
        self._mock_store: dict[str, dict[str, Any]] | None = {} if self._is_mock else None
        self.fs = None if self._is_mock else GridFS(self.db, collection="cms_file_data")

    def put(self, *, file_id: str, data: bytes, filename: str, content_type: str) -> None:
        if self._is_mock and self._mock_store is not None:
            self._mock_store[file_id] = {"data": data, "content_type": content_type}
            return
        assert self.fs is not None
        self.fs.put(
            data,
            _id=file_id,
            filename=filename,
            content_type=content_type,
            metadata={"created_at": datetime.utcnow().isoformat() + "Z"},
        )

    def get(self, file_id: str):
        if self._is_mock and self._mock_store is not None:
            entry = self._mock_store.get(file_id)
            if not entry:
                raise KeyError(file_id)
            return _MemoryGridOut(entry["data"], entry["content_type"])
        assert self.fs is not None
        try:
            return self.fs.get(file_id)
        except NoFile as exc:
            raise KeyError(file_id) from exc

    def delete(self, file_id: str) -> None:
        if self._is_mock and self._mock_store is not None:
            self._mock_store.pop(file_id, None)
            return
        assert self.fs is not None
        self.fs.delete(file_id)

    def exists(self, file_id: str) -> bool:
        if self._is_mock and self._mock_store is not None:
            return file_id in self._mock_store
        assert self.fs is not None
        return self.fs.exists(file_id)
