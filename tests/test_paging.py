from __future__ import annotations

from hypothesis import given, strategies as st
import pytest

from pubmed_retrieval.errors import AdmissionDeniedError
from pubmed_retrieval.paging import (
    MAX_RESULTS_PER_QUERY,
    Page,
    ensure_admissible,
    plan_pages,
)


@given(
    total=st.integers(min_value=0, max_value=MAX_RESULTS_PER_QUERY),
    page_size=st.integers(min_value=1, max_value=500),
)
def test_plan_covers_every_record_exactly_once(total: int, page_size: int) -> None:
    pages = plan_pages(total, page_size)

    covered = [index for page in pages for index in range(page.offset, page.offset + page.size)]
    assert covered == list(range(total))
    assert all(0 < page.size <= page_size for page in pages)
    assert len(pages) == -(-total // page_size)


def test_plan_clamps_last_page() -> None:
    assert plan_pages(450, 200) == [Page(0, 200), Page(200, 200), Page(400, 50)]


def test_plan_for_exact_multiple_has_no_empty_page() -> None:
    assert plan_pages(400, 200) == [Page(0, 200), Page(200, 200)]


def test_plan_is_empty_without_matches() -> None:
    assert plan_pages(0, 200) == []


@pytest.mark.parametrize(("total", "page_size"), [(-1, 10), (10, 0), (10, -5)])
def test_plan_rejects_invalid_arguments(total: int, page_size: int) -> None:
    with pytest.raises(ValueError):
        plan_pages(total, page_size)


def test_ceiling_itself_is_admitted() -> None:
    ensure_admissible(2000)


def test_one_above_ceiling_is_denied() -> None:
    with pytest.raises(AdmissionDeniedError) as excinfo:
        ensure_admissible(2001)

    assert excinfo.value.total_count == 2001
    assert excinfo.value.ceiling == MAX_RESULTS_PER_QUERY
    assert "2001" in str(excinfo.value)


def test_custom_ceiling() -> None:
    ensure_admissible(5, ceiling=5)
    with pytest.raises(AdmissionDeniedError):
        ensure_admissible(6, ceiling=5)
