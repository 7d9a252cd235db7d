"""Retention engine exceptions."""


class RetentionError(Exception):
    """Base class for retention engine errors."""


class RecordNotFoundError(RetentionError):
    """The host store has no record with the requested id."""

    def __init__(self, record_id: int):
        super().__init__(f"Record {record_id} not found")
        self.record_id = record_id


class InvalidScopeError(RetentionError):
    """Unknown dry-run scope."""

    def __init__(self, scope: str):
        super().__init__(f"Unknown estimate scope '{scope}' (expected 'records' or 'files')")
        self.scope = scope


class InvalidSearchError(RetentionError):
    """Person search rejected before any record is returned."""


class SearchTermTooShortError(InvalidSearchError):
    def __init__(self, min_length: int):
        super().__init__(f"Search term must be at least {min_length} characters")
        self.min_length = min_length


class TooManySearchResultsError(InvalidSearchError):
    """The term matches more records than one search may list."""

    def __init__(self, total: int, limit: int):
        super().__init__(f"Search matches {total} records (limit {limit}), use a more specific term")
        self.total = total
        self.limit = limit
