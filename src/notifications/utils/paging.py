"""Paged reads over repository queries.

Protean caps a query at its limit, so reads that must see every matching
record walk the result set one page at a time. Pages are taken over a fixed
ordering so that offsets stay stable on SQL providers.
"""

PAGE_SIZE = 1000


def fetch_all(query, page_size: int = PAGE_SIZE, order_by: str = "id") -> list:
    """Every record matched by `query`, read `page_size` rows at a time."""
    query = query.order_by(order_by)
    found, offset = [], 0
    while True:
        page = query.offset(offset).limit(page_size).all().items
        found.extend(page)
        if len(page) < page_size:
            return found
        offset += page_size
