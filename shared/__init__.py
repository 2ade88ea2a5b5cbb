"""
Shared infrastructure for the PIX billing API.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (pydantic-settings)
  - logging.py: Structured logging

- shared.infrastructure: Persistence and request plumbing
  - db.py: Store handle (engine + sessions), StoreUnavailable
  - correlation.py: Correlation ID middleware and logging filter

- shared.security: Abuse protection
  - rate_limit.py: slowapi limiter for charge creation

- shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging
  - schemas.py: Pydantic request/response schemas

IMPORT EXAMPLES:
    from shared.config.settings import get_settings
    from shared.config.logging import get_logger
    from shared.infrastructure.db import Store
    from shared.utils.exceptions import ValidationError
"""
