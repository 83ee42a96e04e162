"""Schema package — typed models and configuration for the rollup engine.

Provides the contract between ingestion, the classifier, and the processor:

- models.py: Core dataclasses (TransactionRecord, Arsenal, MatchRule, etc.)
- design_system.py: Value formatting and refund-rate severity
- defaults.py: Built-in system arsenals
- loader.py: YAML serialization/deserialization and arsenal sources
"""

from .defaults import (
    build_default_arsenal,
    build_frontend_upsell_arsenal,
    build_system_arsenals,
)
from .design_system import (
    format_compact_currency,
    format_currency,
    format_integer,
    format_percentage,
    format_value,
    refund_rate_severity,
    severity_color,
)
from .loader import (
    ArsenalSource,
    FileArsenalStore,
    StaticArsenalSource,
    load_arsenal,
    load_arsenals,
    load_engine_config,
    save_arsenal,
    save_arsenals,
    save_engine_config,
)
from .models import (
    Arsenal,
    ArsenalConfig,
    CustomProductGroup,
    EngineConfig,
    FormatType,
    MatchRule,
    MatchRuleKind,
    OfferRule,
    OfferType,
    Platform,
    Severity,
    TransactionRecord,
    TransactionStatus,
    TransactionType,
)

__all__ = [
    # Models
    "Arsenal",
    "ArsenalConfig",
    "CustomProductGroup",
    "EngineConfig",
    "FormatType",
    "MatchRule",
    "MatchRuleKind",
    "OfferRule",
    "OfferType",
    "Platform",
    "Severity",
    "TransactionRecord",
    "TransactionStatus",
    "TransactionType",
    # Built-in arsenals
    "build_default_arsenal",
    "build_frontend_upsell_arsenal",
    "build_system_arsenals",
    # Loader
    "ArsenalSource",
    "FileArsenalStore",
    "StaticArsenalSource",
    "load_arsenal",
    "load_arsenals",
    "load_engine_config",
    "save_arsenal",
    "save_arsenals",
    "save_engine_config",
    # Formatting
    "format_compact_currency",
    "format_currency",
    "format_integer",
    "format_percentage",
    "format_value",
    "refund_rate_severity",
    "severity_color",
]
