from .contracts import BatchRequest, Query, QueryKind, TimeRange

__all__ = ["BatchRequest", "Query", "QueryKind", "TimeRange"]
