from __future__ import annotations

from rowstream.pagination.policy import PageSizePolicy

POLICY = PageSizePolicy(first_page_size=500, max_page_size=50_000, sweep_remainder=True)


def test_first_page_is_capped_at_first_page_size() -> None:
    assert POLICY.size_for(10_000, first_page=True, total_count=10_000) == 500
    assert POLICY.size_for(50, first_page=True, total_count=10_000) == 50


def test_later_pages_sweep_the_remainder() -> None:
    assert POLICY.size_for(1_000, first_page=False, total_count=10_000) == 10_000


def test_sweep_never_exceeds_max_page_size() -> None:
    assert POLICY.size_for(1_000, first_page=False, total_count=2_000_000) == 50_000


def test_without_sweep_later_pages_use_requested_limit() -> None:
    policy = PageSizePolicy(first_page_size=500, max_page_size=50_000, sweep_remainder=False)
    assert policy.size_for(1_000, first_page=False, total_count=10_000) == 1_000


def test_missing_or_non_positive_limit_falls_back_to_first_page_size() -> None:
    assert POLICY.size_for(None, first_page=True, total_count=0) == 500
    assert POLICY.size_for(0, first_page=False, total_count=0) == 500
    assert POLICY.size_for(-3, first_page=True, total_count=0) == 500


def test_size_is_at_least_one() -> None:
    tiny = PageSizePolicy(first_page_size=0, max_page_size=10)
    assert tiny.size_for(None, first_page=True, total_count=0) == 1
