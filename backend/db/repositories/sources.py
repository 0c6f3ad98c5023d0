"""Indexer and download client configuration repository."""

import logging

from sqlalchemy import select

from db.models.library import DownloadClientConfig, Indexer
from db.repositories.base import BaseRepository
from error_handler import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

VALID_INDEXER_PROTOCOLS = ("torznab", "newznab")
VALID_CLIENT_TYPES = ("qbittorrent", "transmission", "sabnzbd", "nzbget")

_INDEXER_FIELDS = ("name", "protocol", "url", "api_key", "categories", "priority")
_CLIENT_FIELDS = ("name", "client_type", "url", "username", "password", "api_key", "category", "priority")


class SourceRepository(BaseRepository):
    """Repository for indexers and download_clients."""

    flag_columns = ("enabled",)

    # ---- Indexers ---------------------------------------------------------------

    def list_indexers(self, enabled_only: bool = False) -> list[dict]:
        stmt = select(Indexer).order_by(Indexer.priority, Indexer.id)
        if enabled_only:
            stmt = stmt.where(Indexer.enabled == 1)
        return [self._to_dict(r) for r in self.session.execute(stmt).scalars().all()]

    def get_indexer(self, indexer_id: int) -> dict | None:
        return self._to_dict(self.session.get(Indexer, indexer_id))

    def save_indexer(self, data: dict, indexer_id: int | None = None) -> dict:
        """Create (indexer_id None) or update an indexer."""
        if "protocol" in data and data["protocol"] not in VALID_INDEXER_PROTOCOLS:
            raise ValidationError(f"Invalid indexer protocol: {data['protocol']}")
        if indexer_id is None:
            if not data.get("name") or not data.get("url") or not data.get("protocol"):
                raise ValidationError("Indexer name, url and protocol are required")
            row = Indexer()
            self.session.add(row)
        else:
            row = self.session.get(Indexer, indexer_id)
            if row is None:
                raise NotFoundError(f"Indexer {indexer_id} not found")
        for key in _INDEXER_FIELDS:
            if key in data:
                setattr(row, key, data[key])
        if "enabled" in data or indexer_id is None:
            row.enabled = 1 if data.get("enabled", True) else 0
        self._commit()
        return self._to_dict(row)

    def delete_indexer(self, indexer_id: int) -> bool:
        row = self.session.get(Indexer, indexer_id)
        if row is None:
            return False
        self.session.delete(row)
        self._commit()
        return True

    # ---- Download clients -------------------------------------------------------

    def list_clients(self, enabled_only: bool = False) -> list[dict]:
        stmt = select(DownloadClientConfig).order_by(DownloadClientConfig.priority, DownloadClientConfig.id)
        if enabled_only:
            stmt = stmt.where(DownloadClientConfig.enabled == 1)
        return [self._to_dict(r) for r in self.session.execute(stmt).scalars().all()]

    def get_client(self, client_id: int) -> dict | None:
        return self._to_dict(self.session.get(DownloadClientConfig, client_id))

    def save_client(self, data: dict, client_id: int | None = None) -> dict:
        """Create (client_id None) or update a download client."""
        if "client_type" in data and data["client_type"] not in VALID_CLIENT_TYPES:
            raise ValidationError(f"Invalid download client type: {data['client_type']}")
        if client_id is None:
            if not data.get("name") or not data.get("url") or not data.get("client_type"):
                raise ValidationError("Client name, url and client_type are required")
            row = DownloadClientConfig()
            self.session.add(row)
        else:
            row = self.session.get(DownloadClientConfig, client_id)
            if row is None:
                raise NotFoundError(f"Download client {client_id} not found")
        for key in _CLIENT_FIELDS:
            if key in data:
                setattr(row, key, data[key])
        if "enabled" in data or client_id is None:
            row.enabled = 1 if data.get("enabled", True) else 0
        self._commit()
        return self._to_dict(row)

    def delete_client(self, client_id: int) -> bool:
        row = self.session.get(DownloadClientConfig, client_id)
        if row is None:
            return False
        self.session.delete(row)
        self._commit()
        return True
