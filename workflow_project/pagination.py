"""
Pagination for Function-Based Views

``auto_paginate`` wraps a function-based view and pages any list it returns
for a GET request. Responses keep the standardized envelope:
{
    "status": "success",
    "message": "",
    "data": {"count": ..., "next": ..., "previous": ..., "results": [...]}
}
"""
from functools import wraps

from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class StandardResultsSetPagination(PageNumberPagination):
    """
    Query Parameters:
    - page: Page number (default: 1)
    - page_size: Items per page (default: 20, max: 100)
    """
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100

    def get_paginated_response(self, data):
        return Response({
            'status': 'success',
            'message': '',
            'data': {
                'count': self.page.paginator.count,
                'next': self.get_next_link(),
                'previous': self.get_previous_link(),
                'results': data
            }
        })


def auto_paginate(view_func):
    """
    Page list responses of GET requests.

    Usage:
        @api_view(['GET', 'POST'])
        @auto_paginate
        def request_list(request):
            ...
            return Response(serializer.data)

    POST responses and non-list payloads (detail views, error envelopes)
    pass through untouched.
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        response = view_func(request, *args, **kwargs)

        if (
            request.method == 'GET' and
            isinstance(response, Response) and
            isinstance(response.data, list)
        ):
            paginator = StandardResultsSetPagination()
            page = paginator.paginate_queryset(response.data, request)
            if page is not None:
                return paginator.get_paginated_response(page)

        return response

    return wrapper
