"""
api/routes/v1/vault.py -- Vault item routes for the StashIt REST API.

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET    /vault                      -- list live items (?category=)
  GET    /vault/search               -- substring search (?q=&category=)
  GET    /vault/trash                -- items deleted in the last 30 days
  GET    /vault/stats                -- live item count per category
  POST   /vault/export               -- every live item, passwords decrypted
  POST   /vault/import               -- bulk create from an export payload
  POST   /vault                      -- create item
  GET    /vault/{item_id}            -- item detail
  PUT    /vault/{item_id}            -- update item
  DELETE /vault/{item_id}            -- move to trash
  POST   /vault/{item_id}/restore    -- take out of trash
  DELETE /vault/{item_id}/permanent  -- delete an item outright

Encryption at rest:
  Every write that carries a non-empty password stores cipher.encrypt(password)
  with a fresh IV. Every response that carries a password runs it through
  cipher.try_decrypt() first. Decrypt failures are logged with the item id
  and the stored value is served unchanged, so a corrupt row never breaks a
  listing.

Scoping: every store call passes the caller's user id. Another user's item id
is indistinguishable from a missing one (404).
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import (
    MessageResponse,
    VaultExportResponse,
    VaultImportItem,
    VaultImportRequest,
    VaultImportResponse,
    VaultItemCreate,
    VaultItemResponse,
    VaultItemUpdate,
    VaultStatsResponse,
)
from auth.dependencies import get_current_user
from auth.models import User
from core.crypto import CipherEnvelope
from vault.models import CATEGORIES, VaultItem
from vault.store import VaultStore

logger = logging.getLogger("stashit.vault")

# All vault routes require authentication. The router-level dependency
# rejects the request before any handler runs; handlers that need the
# caller's identity declare Depends(get_current_user) again, which FastAPI
# resolves once per request.
router = APIRouter(dependencies=[Depends(get_current_user)])

_TRASH_RETENTION = timedelta(days=30)
_SEARCH_LIMIT = 50

_NOT_FOUND = {"code": "not_found", "message": "Item not found."}

# Fields where an explicit null in a PUT body means "leave unchanged" because
# the column cannot be empty.
_NON_NULLABLE_UPDATES = ("category", "name", "tags", "favorite")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _store(request: Request) -> VaultStore:
    return request.app.state.vault_store


def _cipher(request: Request) -> CipherEnvelope:
    return request.app.state.cipher


def _category_filter(category: Optional[str]) -> Optional[str]:
    """Map the ?category= query value to a store filter. "all" and empty mean no filter."""
    if not category or category == "all":
        return None
    if category not in CATEGORIES:
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_category", "message": f"Unknown category {category!r}."},
        )
    return category


def _to_response(cipher: CipherEnvelope, item: VaultItem) -> VaultItemResponse:
    result = cipher.try_decrypt(item.password)
    if not result.ok:
        logger.warning("Item %d: stored password could not be decrypted (%s)", item.id, result.error)
    return VaultItemResponse.from_item(item, result.value)


def _to_responses(cipher: CipherEnvelope, items: list[VaultItem]) -> list[VaultItemResponse]:
    return [_to_response(cipher, item) for item in items]


def _new_item(cipher: CipherEnvelope, user_id: int, body: VaultItemCreate) -> VaultItem:
    return VaultItem(
        user_id=user_id,
        category=body.category.value,
        name=body.name,
        website=body.website,
        username=body.username,
        password=cipher.encrypt(body.password) if body.password else None,
        notes=body.notes,
        tags=body.tags,
        favorite=body.favorite,
    )


# ---------------------------------------------------------------------------
# Collection routes
# ---------------------------------------------------------------------------


@limiter.limit("120/minute")
@router.get("/vault", response_model=list[VaultItemResponse])
def list_items(
    request: Request,
    category: Optional[str] = None,
    current_user: User = Depends(get_current_user),
) -> list[VaultItemResponse]:
    """Return the caller's live items, favorites first, then most recently updated."""
    items = _store(request).list_items(current_user.id, category=_category_filter(category))
    return _to_responses(_cipher(request), items)


@limiter.limit("120/minute")
@router.get("/vault/search", response_model=list[VaultItemResponse])
def search_items(
    request: Request,
    q: Optional[str] = None,
    category: Optional[str] = None,
    current_user: User = Depends(get_current_user),
) -> list[VaultItemResponse]:
    """Search name, website, username, notes and tags. At most 50 results."""
    if not q or not q.strip():
        raise HTTPException(
            status_code=400,
            detail={"code": "missing_query", "message": "Search query is required."},
        )
    items = _store(request).search_items(
        current_user.id,
        q.strip(),
        category=_category_filter(category),
        limit=_SEARCH_LIMIT,
    )
    return _to_responses(_cipher(request), items)


@router.get("/vault/trash", response_model=list[VaultItemResponse])
def list_trash(request: Request, current_user: User = Depends(get_current_user)) -> list[VaultItemResponse]:
    """Return items moved to the trash within the retention window, newest first."""
    since = (datetime.now(timezone.utc) - _TRASH_RETENTION).isoformat()
    items = _store(request).list_trash(current_user.id, since)
    return _to_responses(_cipher(request), items)


@router.get("/vault/stats", response_model=VaultStatsResponse)
def stats(request: Request, current_user: User = Depends(get_current_user)) -> VaultStatsResponse:
    """Return live item counts per category plus the total."""
    counts = _store(request).category_counts(current_user.id)
    known = {c: counts.get(c, 0) for c in CATEGORIES}
    return VaultStatsResponse(**known, total=sum(counts.values()))


@limiter.limit("10/minute")
@router.post("/vault/export", response_model=VaultExportResponse)
def export_items(request: Request, current_user: User = Depends(get_current_user)) -> VaultExportResponse:
    """Return every live item with passwords decrypted, for backup by the extension."""
    items = _store(request).all_items(current_user.id)
    logger.info("User %d exported %d items", current_user.id, len(items))
    return VaultExportResponse(
        exported_at=datetime.now(timezone.utc).isoformat(),
        item_count=len(items),
        items=_to_responses(_cipher(request), items),
    )


@limiter.limit("10/minute")
@router.post("/vault/import", response_model=VaultImportResponse)
def import_items(
    request: Request,
    body: VaultImportRequest,
    current_user: User = Depends(get_current_user),
) -> VaultImportResponse:
    """Create one new item per valid entry. Passwords arrive as plaintext and are encrypted.

    An entry that fails validation (e.g. no category or name) or cannot be
    written is skipped and counted; the rest of the payload is still imported.
    """
    store = _store(request)
    cipher = _cipher(request)
    imported = skipped = 0
    for index, raw in enumerate(body.items):
        try:
            entry = VaultImportItem.model_validate(raw)
        except ValidationError as exc:
            logger.info("Import entry %d skipped: %d validation errors", index, exc.error_count())
            skipped += 1
            continue
        try:
            store.create_item(_new_item(cipher, current_user.id, entry))
        except SQLAlchemyError:
            logger.exception("Import entry %d skipped: store write failed", index)
            skipped += 1
            continue
        imported += 1
    logger.info("User %d imported %d items, skipped %d", current_user.id, imported, skipped)
    return VaultImportResponse(
        message="Import completed",
        imported=imported,
        skipped=skipped,
        total=len(body.items),
    )


@limiter.limit("60/minute")
@router.post("/vault", response_model=VaultItemResponse, status_code=201)
def create_item(
    request: Request,
    body: VaultItemCreate,
    current_user: User = Depends(get_current_user),
) -> VaultItemResponse:
    """Store a new item. A non-empty password is encrypted before it reaches the store."""
    store = _store(request)
    cipher = _cipher(request)
    item_id = store.create_item(_new_item(cipher, current_user.id, body))
    created = store.get_item(item_id, current_user.id)
    if created is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "Item not found after write."},
        )
    return _to_response(cipher, created)


# ---------------------------------------------------------------------------
# Item routes
# ---------------------------------------------------------------------------


@router.get("/vault/{item_id}", response_model=VaultItemResponse)
def get_item(request: Request, item_id: int, current_user: User = Depends(get_current_user)) -> VaultItemResponse:
    """Return one item, live or trashed, with its password decrypted."""
    item = _store(request).get_item(item_id, current_user.id, include_trashed=True)
    if item is None:
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    return _to_response(_cipher(request), item)


@limiter.limit("60/minute")
@router.put("/vault/{item_id}", response_model=VaultItemResponse)
def update_item(
    request: Request,
    item_id: int,
    body: VaultItemUpdate,
    current_user: User = Depends(get_current_user),
) -> VaultItemResponse:
    """Apply the supplied fields. A new password is re-encrypted with a fresh IV; "" clears it."""
    store = _store(request)
    cipher = _cipher(request)

    updates = body.model_dump(exclude_unset=True)
    for key in _NON_NULLABLE_UPDATES:
        if key in updates and updates[key] is None:
            del updates[key]
    if "category" in updates:
        updates["category"] = body.category.value
    if "password" in updates:
        updates["password"] = cipher.encrypt(updates["password"]) if updates["password"] else ""

    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )

    if not store.update_item(item_id, current_user.id, **updates):
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    updated = store.get_item(item_id, current_user.id)
    if updated is None:
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    return _to_response(cipher, updated)


@router.delete("/vault/{item_id}", response_model=MessageResponse)
def delete_item(request: Request, item_id: int, current_user: User = Depends(get_current_user)) -> MessageResponse:
    """Move an item to the trash. It stays restorable for 30 days."""
    if not _store(request).soft_delete(item_id, current_user.id):
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    return MessageResponse(message="Item moved to trash")


@router.post("/vault/{item_id}/restore", response_model=MessageResponse)
def restore_item(request: Request, item_id: int, current_user: User = Depends(get_current_user)) -> MessageResponse:
    """Take an item back out of the trash."""
    if not _store(request).restore(item_id, current_user.id):
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    return MessageResponse(message="Item restored")


@router.delete("/vault/{item_id}/permanent", response_model=MessageResponse)
def purge_item(request: Request, item_id: int, current_user: User = Depends(get_current_user)) -> MessageResponse:
    """Permanently delete an item, whether or not it is in the trash."""
    if not _store(request).purge(item_id, current_user.id):
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    return MessageResponse(message="Item permanently deleted")
