"""
Blob uploads for mission and maintenance files.

Files go to the remote storage bucket when the remote is configured. If it
is not, or the upload fails, the file is written to a local upload
directory and a file:// URL is returned so the record still points at it.
"""

import logging
import time
from pathlib import Path
from typing import Optional

import requests

from fleetdesk.config import config

logger = logging.getLogger(__name__)


def _safe_name(filename: str) -> str:
    name = Path(filename).name or 'upload.bin'
    return ''.join(c if c.isalnum() or c in '._-' else '_' for c in name)


class BlobStore:
    """Uploads bytes and returns a URL for them."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        bucket: Optional[str] = None,
        local_dir: Optional[str] = None,
        session: Optional[requests.Session] = None,
        request_timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or '').rstrip('/')
        self.api_key = api_key or ''
        self.bucket = bucket or config.upload.bucket
        self.local_dir = Path(local_dir or config.upload.local_dir)
        self.request_timeout = request_timeout or config.store.request_timeout
        self.session = session or requests.Session()

        if not self.remote_enabled:
            logger.warning('Remote storage not configured - uploads kept on local disk')

    @classmethod
    def from_config(cls) -> 'BlobStore':
        if not config.remote.is_configured:
            return cls()
        return cls(base_url=config.remote.url, api_key=config.remote.api_key)

    @property
    def remote_enabled(self) -> bool:
        return bool(self.base_url and self.api_key)

    def store(self, data: bytes, filename: str) -> str:
        """Store a file and return its URL (remote public URL or file://)."""
        name = f'{int(time.time() * 1000)}_{_safe_name(filename)}'

        if self.remote_enabled:
            try:
                return self._upload(data, name)
            except requests.exceptions.RequestException as e:
                logger.warning(f'Upload of {name} failed, keeping local copy: {e}')

        return self._store_local(data, name)

    def _upload(self, data: bytes, name: str) -> str:
        response = self.session.post(
            f'{self.base_url}/storage/v1/object/{self.bucket}/{name}',
            data=data,
            headers={
                'apikey': self.api_key,
                'Authorization': f'Bearer {self.api_key}',
                'Content-Type': 'application/octet-stream',
            },
            timeout=self.request_timeout,
        )
        response.raise_for_status()
        logger.info(f'Uploaded {name} to bucket {self.bucket}')
        return f'{self.base_url}/storage/v1/object/public/{self.bucket}/{name}'

    def _store_local(self, data: bytes, name: str) -> str:
        self.local_dir.mkdir(parents=True, exist_ok=True)
        path = (self.local_dir / name).resolve()
        path.write_bytes(data)
        logger.debug(f'Stored {name} locally at {path}')
        return path.as_uri()
