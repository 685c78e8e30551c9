"""Repository navigator: retrieval-augmented Q&A over hosted repositories."""

from .config import NavigatorConfig
from .errors import InputError, NavigatorError, OperationTimeout, UpstreamUnavailable
from .types import Domain, RepositoryRef

__all__ = [
    "Domain",
    "InputError",
    "NavigatorConfig",
    "NavigatorError",
    "OperationTimeout",
    "RepositoryRef",
    "UpstreamUnavailable",
]
