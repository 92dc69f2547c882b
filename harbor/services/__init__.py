"""Services shared by the managers."""

from harbor.services.journal import OperationJournal
from harbor.services.layout import METADATA_DIR, ensure_workspace_layout

__all__ = ["METADATA_DIR", "OperationJournal", "ensure_workspace_layout"]
