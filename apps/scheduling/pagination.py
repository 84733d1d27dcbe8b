from django.conf import settings
from rest_framework.pagination import LimitOffsetPagination


class SalonPagination(LimitOffsetPagination):
    """Limit/offset paging shared by the appointment, client and pet lists."""

    default_limit = settings.API_PAGE_SIZE
    max_limit = settings.API_MAX_PAGE_SIZE
