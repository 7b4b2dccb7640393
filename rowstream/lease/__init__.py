"""Advisory bulk leases consulted by the view-state write path."""

from rowstream.lease.manager import LeaseManager, defer_if_locked, ttl_for_rows, utc_now

__all__ = ["LeaseManager", "defer_if_locked", "ttl_for_rows", "utc_now"]
