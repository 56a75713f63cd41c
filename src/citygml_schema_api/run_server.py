"""Start the CityGML schema API under uvicorn.

Usage::

    CITYGML_XSD_DIR=./xsds python -m citygml_schema_api.run_server
    HOST=127.0.0.1 PORT=9000 python -m citygml_schema_api.run_server

``HOST`` and ``PORT`` pick the bind address (``0.0.0.0:8000`` by default).
Schema location and log level come from the ``CITYGML_*`` variables read by
:meth:`~citygml_schema_api.config.ExtractorConfig.from_env`. For several
workers run ``uvicorn citygml_schema_api.app:app --workers N`` instead.
"""

from __future__ import annotations

import logging
import os

import uvicorn

from .app import app
from .config import ExtractorConfig, setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    config = ExtractorConfig.from_env()
    setup_logging(config.log_level)
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    logger.info(f"Serving schemas from {config.root_schema_path} on {host}:{port}")
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
