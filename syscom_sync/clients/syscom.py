from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

import requests

from syscom_sync.config import MODE_BRAND, SYSCOM_API_BASE, SYSCOM_OAUTH_URL

logger = logging.getLogger(__name__)

_PID_IN_URL = re.compile(r"productos/(\d+)")


class SyscomError(RuntimeError):
    """HTTP or payload failure talking to the Syscom API."""

    def __init__(self, message: str, status: Optional[int] = None, payload: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.payload = payload


def _details(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


def unwrap_product_list(payload: Any) -> List[Dict[str, Any]]:
    """
    Listing responses come as {data: {productos: [...]}}, {data: [...]},
    {productos: [...]} or a bare list.
    """
    candidates = []
    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, dict):
            candidates.append(data.get("productos"))
        candidates.append(data)
        candidates.append(payload.get("productos"))
    candidates.append(payload)
    for cand in candidates:
        if isinstance(cand, list):
            return cand
    return []


def unwrap_item(item: Any) -> Dict[str, Any]:
    if not isinstance(item, dict):
        return {}
    for key in ("producto", "Producto", "item", "Item"):
        inner = item.get(key)
        if isinstance(inner, dict):
            return inner
    return item


def product_id_of(row: Dict[str, Any]) -> Optional[str]:
    for key in ("id", "producto_id", "id_producto", "pid"):
        val = row.get(key)
        if val not in (None, ""):
            return str(val)
    for key in ("url", "link", "href"):
        val = row.get(key)
        if isinstance(val, str):
            m = _PID_IN_URL.search(val)
            if m:
                return m.group(1)
    return None


class SyscomClient:
    """
    Minimal Syscom developer API client.

    The bearer token is fetched once (client_credentials) and reused for the
    rest of the run.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        currency: str = "mxn",
        session: Optional[requests.Session] = None,
        base_url: str = SYSCOM_API_BASE,
        oauth_url: str = SYSCOM_OAUTH_URL,
        timeout: float = 30,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.currency = currency
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip("/")
        self.oauth_url = oauth_url
        self.timeout = timeout
        self._token: Optional[str] = None

    def fetch_token(self) -> str:
        """Fetch an OAuth token. Any failure here is fatal for the run."""
        resp = self.session.post(
            self.oauth_url,
            data={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=self.timeout,
        )
        if resp.status_code != 200:
            details = _details(resp)
            raise SyscomError(f"Syscom token request failed: {resp.status_code} {details}", resp.status_code, details)
        token = (resp.json() or {}).get("access_token")
        if not token:
            raise SyscomError("Syscom token response has no access_token")
        self._token = token
        return token

    @property
    def token(self) -> str:
        if not self._token:
            self.fetch_token()
        return self._token  # type: ignore[return-value]

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        resp = self.session.get(
            url,
            headers={"Authorization": f"Bearer {self.token}"},
            params=params or {},
            timeout=self.timeout,
        )
        if resp.status_code != 200:
            details = _details(resp)
            raise SyscomError(f"Syscom GET {path} failed: {resp.status_code} {details}", resp.status_code, details)
        return resp.json()

    def get_exchange_rate(self) -> Optional[float]:
        """
        Return the 'normal' MXN/USD rate from /tipocambio, or None when the
        endpoint fails or has no usable value. Callers apply the fallback.
        """
        try:
            data = self._get("/tipocambio")
        except (SyscomError, requests.RequestException, ValueError) as exc:
            logger.warning("Exchange rate fetch failed: %s", exc)
            return None
        if not isinstance(data, dict):
            return None
        raw = data.get("normal")
        if raw is None and isinstance(data.get("data"), dict):
            raw = data["data"].get("normal")
        try:
            rate = float(raw)
        except (TypeError, ValueError):
            return None
        return rate if rate > 0 else None

    def list_products(self, query: str, page: int, stock_only: bool = True, mode: str = "search") -> List[Dict[str, Any]]:
        """One listing page; an empty list means there are no more pages."""
        params: Dict[str, Any] = {
            "stock": 1 if stock_only else 0,
            "agrupar": 1,
            "pagina": page,
            "moneda": self.currency,
        }
        if mode == MODE_BRAND:
            data = self._get(f"/marcas/{query}/productos", params)
        else:
            params["busqueda"] = query
            data = self._get("/productos", params)
        return unwrap_product_list(data)

    def get_product_detail(self, product_id: str) -> Dict[str, Any]:
        data = self._get(f"/productos/{product_id}", {"moneda": self.currency})
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            return data["data"]
        if not isinstance(data, dict):
            raise SyscomError(f"Unexpected detail payload for product {product_id}", payload=data)
        return data
