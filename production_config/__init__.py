"""
production_config -- single public entrypoint for production configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or the ``PRODUCTION_CONFIG_PATH`` environment variable directly.

Architecture position:
    Configuration -- YAML-driven settings.  Sits above ``production_kernel``
    and ``production_engines`` and below ``production_services``.  The
    kernel MUST NEVER import from ``production_config``; bridges in this
    package translate configuration into kernel inputs.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Every floor name in the configuration is canonical after loading.

Failure modes:
    - ``FileNotFoundError`` -- the configured file does not exist.
    - ``ValueError`` -- the file failed validation.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``PRODUCTION_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying every article mutation to the configuration that
    governed it.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from production_config.loader import load_config
from production_config.schema import ProductionConfig

_logger = logging.getLogger("production_kernel.config")

CONFIG_PATH_ENV = "PRODUCTION_CONFIG_PATH"

_DEFAULT_CONFIG_FILE = Path(__file__).parent / "sets" / "production.yaml"


def get_active_config(path: Path | str | None = None) -> ProductionConfig:
    """The ONLY public configuration entrypoint.

    Resolution order: the ``path`` argument, then the
    ``PRODUCTION_CONFIG_PATH`` environment variable, then the bundled
    ``sets/production.yaml``.

    Non-goals:
        - Does NOT cache; callers hold the returned config for as long as
          they need it.

    Raises:
        FileNotFoundError: the resolved file does not exist.
        ValueError: the file failed validation.
    """
    if path is not None:
        resolved = Path(path)
    elif os.environ.get(CONFIG_PATH_ENV):
        resolved = Path(os.environ[CONFIG_PATH_ENV])
    else:
        resolved = _DEFAULT_CONFIG_FILE

    config = load_config(resolved)

    _logger.info(
        "PRODUCTION_CONFIG_TRACE",
        extra={
            "trace_type": "PRODUCTION_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(resolved),
            "propagation_mode": config.propagation.mode.value,
            "override_count": len(config.articles.sequence_overrides),
        },
    )
    return config


__all__ = ["CONFIG_PATH_ENV", "ProductionConfig", "get_active_config"]
