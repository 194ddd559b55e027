"""
FPL Companion Backend — entry point and re-exports.

Code lives in fpl_companion/ modules:
- config.py:       UpstreamConfig + NormalizerConfig dataclasses, APP_CONFIG
- constants.py:    URLs, headers, position maps, field alias tables
- errors.py:       Upstream error taxonomy
- models.py:       Reference catalog dataclasses, pydantic records and payloads
- normalizers.py:  Coerce loosely-shaped upstream JSON into canonical records
- calculators.py:  Catalog enrichment, live points, bonus tally, current GW
- presentation.py: Fixture ordering, labels, squad grouping, bonus view
- services.py:     HTTP client, timeout/fallback/retry, resource fetchers
- endpoints.py:    FastAPI app + API endpoints

Tests import from `main` — star-imports re-export everything.
"""

import os

from fpl_companion.config import *        # noqa: F401,F403
from fpl_companion.constants import *     # noqa: F401,F403
from fpl_companion.errors import *        # noqa: F401,F403
from fpl_companion.models import *        # noqa: F401,F403
from fpl_companion.normalizers import *   # noqa: F401,F403
from fpl_companion.calculators import *   # noqa: F401,F403
from fpl_companion.presentation import *  # noqa: F401,F403
from fpl_companion.services import *      # noqa: F401,F403
from fpl_companion.endpoints import app   # noqa: F401

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "8000")),
        log_level=os.environ.get("LOG_LEVEL", "info").lower(),
    )
