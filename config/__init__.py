"""
Configuration module for the clinic outreach scheduler
"""

from .redis import create_redis_connection, check_redis_connection
from .settings import (
    AgentConfig,
    CallbackSettings,
    OutboundCallSettings,
    SchedulerSettings,
    load_agent_config,
)

__all__ = [
    'create_redis_connection', 'check_redis_connection',
    'AgentConfig', 'CallbackSettings', 'OutboundCallSettings', 'SchedulerSettings',
    'load_agent_config',
]
