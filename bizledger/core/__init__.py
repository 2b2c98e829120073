"""Core - configuration, logging and request context."""

from bizledger.core.config import Settings, get_settings
from bizledger.core.context import AuditAction, ServiceContext
from bizledger.core.logging_config import LogContext, configure_logging, get_logger
