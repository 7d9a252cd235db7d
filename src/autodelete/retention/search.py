"""Person search: find the records that mention someone, across categories.

Answers data-subject requests ("which records hold this e-mail address?")
so an operator can review and delete them. Matching itself is delegated to
the RecordStorePort; this module validates the term, pages the results and
shapes them for display.
"""

import logging
import math
from typing import Dict, List

from .exceptions import SearchTermTooShortError, TooManySearchResultsError
from .ports import FieldMatch, RecordStorePort, RetentionRecord
from .schemas import SearchHit, SearchMatch, SearchPage

logger = logging.getLogger(__name__)

MIN_SEARCH_LENGTH = 3
SEARCH_PER_PAGE = 20
MAX_SEARCH_PER_PAGE = 100
MAX_SEARCH_RESULTS = 5000
MATCH_VALUE_MAX_LENGTH = 200

_ELLIPSIS = "..."


def shorten(value: str, max_length: int = MATCH_VALUE_MAX_LENGTH) -> str:
    if len(value) <= max_length:
        return value
    return value[: max_length - len(_ELLIPSIS)] + _ELLIPSIS


class RecordSearch:
    """Paged substring search over the field values of non-trashed records.

    Args:
        store: Host datastore
        max_results: Searches matching more records than this are rejected
    """

    def __init__(self, store: RecordStorePort, max_results: int = MAX_SEARCH_RESULTS):
        self.store = store
        self.max_results = max_results

    def search(self, term: str, page: int = 1, per_page: int = SEARCH_PER_PAGE) -> SearchPage:
        """Return one page of records with a field value containing ``term``.

        Args:
            term: Text to look for; surrounding whitespace is ignored
            page: 1-based page number, clamped to at least 1
            per_page: Page size, clamped to 1..MAX_SEARCH_PER_PAGE

        Returns:
            SearchPage, newest records first, each with its matching fields

        Raises:
            SearchTermTooShortError: Term shorter than MIN_SEARCH_LENGTH
            TooManySearchResultsError: More than ``max_results`` records match
        """
        term = (term or "").strip()
        if len(term) < MIN_SEARCH_LENGTH:
            raise SearchTermTooShortError(MIN_SEARCH_LENGTH)

        page = max(1, page)
        per_page = min(max(1, per_page), MAX_SEARCH_PER_PAGE)

        total = self.store.count_search_matches(term)
        if total > self.max_results:
            raise TooManySearchResultsError(total, self.max_results)

        result = SearchPage(term=term, total=total, page=page, per_page=per_page)
        if total == 0:
            return result

        records = self.store.search_records(term, limit=per_page, offset=(page - 1) * per_page)
        labels: Dict[int, str] = {}
        result.items = [self._hit(record, term, labels) for record in records]
        result.pages = math.ceil(total / per_page)

        logger.info(
            "Person search executed",
            extra={"total": total, "page": page, "returned": len(result.items)},
        )
        return result

    def _hit(self, record: RetentionRecord, term: str, labels: Dict[int, str]) -> SearchHit:
        if record.category_id not in labels:
            labels[record.category_id] = (
                self.store.category_label(record.category_id) or f"Category #{record.category_id}"
            )

        return SearchHit(
            record_id=record.id,
            category_id=record.category_id,
            category_label=labels[record.category_id],
            created_at=record.created_at,
            matches=self._matches(self.store.search_field_matches(record.id, term)),
        )

    @staticmethod
    def _matches(fields: List[FieldMatch]) -> List[SearchMatch]:
        return [
            SearchMatch(
                field_key=field.field_key,
                label=field.label or f"Field {field.field_key}",
                value=shorten(field.value),
            )
            for field in fields
        ]
