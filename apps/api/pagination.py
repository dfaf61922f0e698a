# apps/api/pagination.py
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response

from shared.conf import ledger_setting


class LedgerPagination(PageNumberPagination):
    """
    Page-number pagination returning
    {'data': [...], 'pagination': {currentPage, totalPages, totalItems, hasNext, hasPrev}}.
    """
    page_size_query_param = 'limit'
    max_page_size = 500

    def get_page_size(self, request):
        self.page_size = ledger_setting('PAGE_SIZE')
        return super().get_page_size(request)

    def get_paginated_response(self, data):
        return Response({
            'data': data,
            'pagination': {
                'currentPage': self.page.number,
                'totalPages': self.page.paginator.num_pages,
                'totalItems': self.page.paginator.count,
                'hasNext': self.page.has_next(),
                'hasPrev': self.page.has_previous(),
            },
        })

    def get_paginated_response_schema(self, schema):
        return {
            'type': 'object',
            'properties': {
                'data': schema,
                'pagination': {
                    'type': 'object',
                    'properties': {
                        'currentPage': {'type': 'integer'},
                        'totalPages': {'type': 'integer'},
                        'totalItems': {'type': 'integer'},
                        'hasNext': {'type': 'boolean'},
                        'hasPrev': {'type': 'boolean'},
                    },
                },
            },
        }
