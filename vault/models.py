"""
vault/models.py -- Domain dataclasses for the StashIt vault.

Pure data containers with zero logic. Persistence lives in vault/store.py;
password encryption is applied by the API layer before an item reaches the
store and removed after it comes back.
"""

from dataclasses import dataclass, field
from typing import Optional

CATEGORIES = ("password", "document", "payslip", "photo", "personal")


@dataclass
class VaultItem:
    """One stored secret belonging to a single user.

    password holds the ciphertext envelope (iv:tag:ciphertext) while the item
    is in the store, and plaintext only inside a response being built.
    Legacy rows may still hold plaintext -- core.crypto handles both.

    deleted/deleted_at implement the trash: a deleted item is hidden from
    listings and search, shown in /trash for 30 days, and can be restored or
    purged.

    id is None before the record is written to the database.
    """

    user_id: int
    category: str  # one of CATEGORIES
    name: str
    id: Optional[int] = None
    website: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    notes: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    favorite: bool = False
    deleted: bool = False
    deleted_at: Optional[str] = None  # ISO 8601
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""  # ISO 8601, set by store on every write
