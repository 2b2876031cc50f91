"""FastAPI dependencies shared by the function routes."""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status

from tailoredu.core.personalizer import Personalizer, get_personalizer
from tailoredu.db.backend import BackendStore, get_store
from tailoredu.llm.client import LLMClient

# Module-level client (one per process)
_llm_client: LLMClient | None = None


def get_backend_store() -> BackendStore:
    """Managed backend store."""
    return get_store()


def get_llm_client() -> LLMClient:
    """AI gateway client."""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client


def get_active_personalizer(client: LLMClient = Depends(get_llm_client)) -> Personalizer:
    """Personalization generator selected in the app config."""
    return get_personalizer(client=client)


def require_user(
    authorization: str | None = Header(default=None),
    store: BackendStore = Depends(get_backend_store),
) -> str:
    """Authenticate the bearer token against the backend.

    Returns:
        The caller's user id
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
        )

    token = authorization.removeprefix("Bearer ").strip()
    user_id = store.user_id_for_token(token) if token else None
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return user_id
