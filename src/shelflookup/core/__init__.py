from .errors import DecodeError, HttpStatusError, ResolverError, TransportError
from .models import Genre, LookupResult, RetryPolicy
from .resolver import FallbackResolver

__all__ = [
    "DecodeError",
    "FallbackResolver",
    "Genre",
    "HttpStatusError",
    "LookupResult",
    "ResolverError",
    "RetryPolicy",
    "TransportError",
]
