from .session import ApiSession
from .errors import ApiError, ClientPreconditionError, handle_api_error
from .references import Reference, normalize_reference, unwrap_list
from .console import ConsoleClient

__all__ = [
    'ApiSession',
    'ApiError', 'ClientPreconditionError', 'handle_api_error',
    'Reference', 'normalize_reference', 'unwrap_list',
    'ConsoleClient',
]
