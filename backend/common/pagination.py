import math

from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response

MAX_PER_PAGE = 100


def clamp_page(page, default: int = 1) -> int:
    try:
        value = int(page)
    except (TypeError, ValueError):
        return default
    return max(value, 1)


def clamp_per_page(per_page, default: int = 20, maximum: int = MAX_PER_PAGE) -> int:
    try:
        value = int(per_page)
    except (TypeError, ValueError):
        return default
    return min(max(value, 1), maximum)


def page_meta(page: int, per_page: int, total: int) -> dict:
    total_pages = math.ceil(total / per_page) if per_page else 0
    return {
        "page": page,
        "perPage": per_page,
        "total": total,
        "totalPages": total_pages,
        "hasNextPage": page < total_pages,
        "hasPreviousPage": page > 1,
    }


def enveloped(items, meta: dict, status: int = 200) -> Response:
    resp = Response({"data": items, "meta": meta}, status=status)
    resp.enveloped = True
    return resp


class EnvelopePagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "limit"
    max_page_size = MAX_PER_PAGE

    def get_paginated_response(self, data):
        meta = page_meta(
            self.page.number,
            self.get_page_size(self.request) or self.page_size,
            self.page.paginator.count,
        )
        return enveloped(data, meta)

    def get_paginated_response_schema(self, schema):
        return {
            "type": "object",
            "properties": {
                "data": schema,
                "meta": {"type": "object"},
            },
        }
