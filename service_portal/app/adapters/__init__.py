"""
Adapters package for the Portal service.

HTTP client wrappers for the external systems the portal depends on: the
spreadsheet store, site search and the completion providers (see
``providers``). Adapters map upstream failures to shared errors and hold no
state beyond their HTTP client.
"""

from .sheets_client import SheetStore, TableStore
from .search_client import ContextRetriever, SearchSnippet

__all__ = ["SheetStore", "TableStore", "ContextRetriever", "SearchSnippet"]
