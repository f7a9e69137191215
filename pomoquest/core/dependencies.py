"""Shared dependencies for the progression API."""

from typing import Optional
import httpx
import structlog
from jose import jwt, JWTError
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from pomoquest.core.config import settings
from pomoquest.services.progress_store import ProgressStore
from pomoquest.sync.local_store import LocalStore

logger = structlog.get_logger()

# Global instances
_local_store: Optional[LocalStore] = None
_progress_store: Optional[ProgressStore] = None
_http_client: Optional[httpx.AsyncClient] = None

# Security
security = HTTPBearer()


async def get_local_store() -> LocalStore:
    """Get the cache-backed key-value store."""
    global _local_store

    if _local_store is None:
        try:
            _local_store = LocalStore.from_url(settings.CACHE_URL, namespace=settings.CACHE_NAMESPACE)
            await _local_store.get("connection_check")
            logger.info("Cache store connection established", url=settings.CACHE_URL.split("@")[-1])
        except Exception as e:
            logger.warning("Cache store not available, using in-memory store", error=str(e))
            _local_store = LocalStore(namespace=settings.CACHE_NAMESPACE)

    return _local_store


async def get_progress_store(store: LocalStore = Depends(get_local_store)) -> ProgressStore:
    """Get the server-side progression repository."""
    global _progress_store

    if _progress_store is None or _progress_store.store is not store:
        _progress_store = ProgressStore(store, idempotency_ttl=settings.IDEMPOTENCY_TTL)

    return _progress_store


async def get_http_client() -> httpx.AsyncClient:
    """Get HTTP client for the remote progression API."""
    global _http_client

    if _http_client is None:
        _http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.REMOTE_TIMEOUT_SECONDS),
            headers={
                "Content-Type": "application/json",
                "User-Agent": f"{settings.SERVICE_NAME}/{settings.APP_VERSION}"
            }
        )

    return _http_client


async def close_resources():
    """Release the shared store and HTTP client on shutdown."""
    global _local_store, _progress_store, _http_client

    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None
    if _local_store is not None:
        await _local_store.close()
        _local_store = None
    _progress_store = None


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Get current user from JWT token."""
    token = credentials.credentials

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id: Optional[str] = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return {"user_id": user_id}
