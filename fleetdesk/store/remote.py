"""
Remote backend adapter.

The entity store talks to the authoritative backend through a small
capability interface over named collections:

    list(collection, order_by)          ordered listing
    filter(collection, criteria)        equality filtering
    insert(collection, record)          insert, remote or caller-provided id
    update(collection, id, patch)       partial update by id
    delete(collection, id)              delete by id

RestRemoteAdapter implements it against a PostgREST-style REST API:

    GET    {base}/rest/v1/{collection}?select=*&order=created_at.desc&status=eq.active
    POST   {base}/rest/v1/{collection}             Prefer: return=representation
    PATCH  {base}/rest/v1/{collection}?id=eq.{id}  Prefer: return=representation
    DELETE {base}/rest/v1/{collection}?id=eq.{id}

Authentication (API key and session token) is supplied from outside and is
opaque to the adapter. Transport failures are translated into the store's
error taxonomy here, so nothing above this module sees requests exceptions.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

import requests

from fleetdesk.config import config
from fleetdesk.entities import Record
from fleetdesk.errors import (
    NotFound,
    PermissionDenied,
    RemoteError,
    RemoteTimeout,
    Unreachable,
)

logger = logging.getLogger(__name__)

# PostgREST / Postgres code for row-level security violations
INSUFFICIENT_PRIVILEGE = '42501'


class RemoteAdapter(ABC):
    """Capability interface to a collection-oriented backend."""

    @abstractmethod
    def list(self, collection: str, order_by: Optional[str] = None) -> List[Record]:
        ...

    @abstractmethod
    def filter(self, collection: str, criteria: Mapping[str, Any]) -> List[Record]:
        ...

    @abstractmethod
    def insert(self, collection: str, record: Record) -> Record:
        ...

    @abstractmethod
    def update(self, collection: str, record_id: str, patch: Record) -> Record:
        ...

    @abstractmethod
    def delete(self, collection: str, record_id: str) -> None:
        ...


def _order_param(order_by: str) -> str:
    """'-created_at' -> 'created_at.desc'"""
    if order_by.startswith('-'):
        return f'{order_by[1:]}.desc.nullslast'
    return f'{order_by}.asc'


def _eq_param(value: Any) -> str:
    if value is None:
        return 'is.null'
    if isinstance(value, bool):
        return f'eq.{str(value).lower()}'
    if hasattr(value, 'value'):  # str enums
        value = value.value
    return f'eq.{value}'


class RestRemoteAdapter(RemoteAdapter):
    """
    Client for the remote REST backend.

    Handles:
    - Header-based authentication (apikey + bearer token)
    - Query-string ordering and equality filters
    - Error translation (permission, transport, logical)
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: Optional[str] = None,
        request_timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.request_timeout = request_timeout

        self.session = session or requests.Session()
        self.session.headers.update({
            'apikey': api_key,
            'Authorization': f'Bearer {access_token or api_key}',
            'Content-Type': 'application/json',
            'x-client-info': 'fleetdesk',
        })
        logger.info(f'Remote adapter initialized for {self.base_url}')

    @classmethod
    def from_config(cls) -> 'RestRemoteAdapter':
        """Create adapter from application configuration."""
        return cls(
            base_url=config.remote.url,
            api_key=config.remote.api_key,
            access_token=config.remote.access_token or None,
            request_timeout=config.store.request_timeout,
        )

    def _url(self, collection: str) -> str:
        return f'{self.base_url}/rest/v1/{collection}'

    def _request(
        self,
        method: str,
        collection: str,
        params: Optional[Dict[str, str]] = None,
        payload: Any = None,
        returning: bool = False,
    ) -> Any:
        """
        Perform one HTTP call and decode the JSON body.

        Raises:
            RemoteTimeout, Unreachable on transport failures
            PermissionDenied when the backend refuses
            RemoteError for anything else the backend rejects
        """
        headers = {'Prefer': 'return=representation'} if returning else None
        url = self._url(collection)

        logger.debug(f'{method} {url} params={params}')

        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=payload,
                headers=headers,
                timeout=self.request_timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.warning(f'Remote timeout on {method} {collection}')
            raise RemoteTimeout(f'{method} {collection} timed out') from e
        except requests.exceptions.RequestException as e:
            logger.warning(f'Remote unreachable on {method} {collection}: {e}')
            raise Unreachable(f'{method} {collection} failed: {e}') from e

        if response.status_code >= 400:
            raise self._translate_error(response, method, collection)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _translate_error(self, response: requests.Response, method: str, collection: str) -> RemoteError:
        """Map an error response onto the store taxonomy."""
        status = response.status_code
        code = ''
        message = response.reason or f'HTTP {status}'
        try:
            body = response.json()
            if isinstance(body, dict):
                code = str(body.get('code') or '')
                message = body.get('message') or body.get('error') or message
        except ValueError:
            pass

        lowered = message.lower()
        if (
            status in (401, 403)
            or code == INSUFFICIENT_PRIVILEGE
            or 'permission' in lowered
            or 'policy' in lowered
        ):
            logger.error(f'Remote refused {method} {collection}: {message}')
            return PermissionDenied(message, status_code=status)

        if status >= 500 or status in (408, 429):
            logger.warning(f'Remote error {status} on {method} {collection}: {message}')
            return Unreachable(message, status_code=status)

        logger.error(f'Remote rejected {method} {collection} ({status}): {message}')
        return RemoteError(message, status_code=status)

    # -------------------------------------------------------------------------
    # Capability implementation
    # -------------------------------------------------------------------------

    def list(self, collection: str, order_by: Optional[str] = None) -> List[Record]:
        params = {'select': '*'}
        if order_by:
            params['order'] = _order_param(order_by)
        return self._request('GET', collection, params=params) or []

    def filter(self, collection: str, criteria: Mapping[str, Any]) -> List[Record]:
        params = {'select': '*'}
        for key, value in criteria.items():
            params[key] = _eq_param(value)
        return self._request('GET', collection, params=params) or []

    def insert(self, collection: str, record: Record) -> Record:
        rows = self._request('POST', collection, payload=[record], returning=True)
        if not rows:
            raise RemoteError(f'insert into {collection} returned no row')
        return rows[0]

    def update(self, collection: str, record_id: str, patch: Record) -> Record:
        rows = self._request(
            'PATCH',
            collection,
            params={'id': _eq_param(record_id)},
            payload=patch,
            returning=True,
        )
        if not rows:
            raise NotFound(collection, record_id)
        return rows[0]

    def delete(self, collection: str, record_id: str) -> None:
        self._request('DELETE', collection, params={'id': _eq_param(record_id)})

    def ping(self, collection: str) -> bool:
        """Cheap connectivity check used by diagnostics."""
        self._request('GET', collection, params={'select': 'id', 'limit': '1'})
        return True
