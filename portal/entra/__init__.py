"""
Azure Entra ID helpers.

- Validate bearer access tokens (signature via JWKS, issuer, audience, lifetime)
  and extract the few claims the portal consumes.
- Acquire app-only (client credentials) tokens, e.g. for the Power BI REST API.

No dependency on FastAPI or the database.
"""

from .app_token import ClientCredentialsToken
from .config import EntraConfig
from .context import TokenContext
from .validator import EntraTokenValidator, ValidationError

__all__ = [
    "ClientCredentialsToken",
    "EntraConfig",
    "EntraTokenValidator",
    "TokenContext",
    "ValidationError",
]
