"""
dairy_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains the chart
    of accounts, statement classification rules, outstanding recovery order
    and engine settings.  YAML loading is internal.

Architecture position:
    Configuration.  Sits above ``dairy_kernel`` and below
    ``dairy_modules``.  The kernel never imports from this package;
    ``bridges`` translates configuration into kernel inputs.

Failure modes:
    - ``FileNotFoundError`` -- configuration set directory or root.yaml missing.
    - ``ValueError`` -- structural validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``DAIRY_CONFIG_TRACE`` log entry with the config id, version and
    checksum of the fragments it was built from.
"""

from __future__ import annotations

import logging
from pathlib import Path

from dairy_config.loader import assemble_from_directory, validate_configuration
from dairy_config.schema import (
    ClassificationRule,
    EngineSettings,
    LedgerConfiguration,
    LedgerDefinition,
    OutstandingCategoryConfig,
)

_logger = logging.getLogger("dairy_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets" / "default"

__all__ = [
    "ClassificationRule",
    "EngineSettings",
    "LedgerConfiguration",
    "LedgerDefinition",
    "OutstandingCategoryConfig",
    "get_active_config",
]


def get_active_config(config_dir: Path | None = None) -> LedgerConfiguration:
    """The single public configuration entrypoint.

    Args:
        config_dir: A configuration set directory containing root.yaml.
            Defaults to dairy_config/sets/default/.

    Returns:
        A validated, frozen LedgerConfiguration.  Nothing is cached; callers
        hold the returned object for as long as they need it.

    Raises:
        FileNotFoundError: If the set directory or its root.yaml is missing.
        ValueError: If validation fails.
    """
    set_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    config = assemble_from_directory(set_dir)

    errors = validate_configuration(config)
    if errors:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    _logger.info(
        "DAIRY_CONFIG_TRACE",
        extra={
            "trace_type": "DAIRY_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "ledger_count": len(config.ledgers),
            "rule_count": len(config.classification_rules),
            "recovery_priority": list(config.recovery_priority),
        },
    )
    return config
