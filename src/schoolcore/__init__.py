from .app import SchoolCore, build_cache, build_store
from .cache import AuthCacheInvalidator, CachePort, MemoryCache, NullCache, RedisCache
from .config import AuthConfig, AuthProvider, LogLevel, SchoolCoreConfig, StoreBackend, load_config_from_env
from .context import AuthContext, AuthContextResolver, MembershipView
from .exceptions import (
    ConfigurationError,
    DuplicateKeyError,
    ErrorKind,
    Failure,
    InvalidPermissionKey,
    Ok,
    Result,
    SchoolCoreError,
    StoreError,
    TransactionConflict,
)
from .logging import (
    RequestLoggerAdapter,
    SchoolCoreFormatter,
    get_request_logger,
    redact_secrets,
    safe_log_value,
    safe_preview,
    setup_logging,
)
from .permissions import (
    PermissionKey,
    PermissionRegistry,
    Permissions,
    SystemRoles,
    can,
    has_global_permission,
    has_permission,
)
from .responder import STATUS_BY_KIND, to_response

__all__ = [
    'SchoolCore',
    'build_cache',
    'build_store',
    'AuthCacheInvalidator',
    'CachePort',
    'MemoryCache',
    'NullCache',
    'RedisCache',
    'AuthConfig',
    'AuthProvider',
    'LogLevel',
    'SchoolCoreConfig',
    'StoreBackend',
    'load_config_from_env',
    'AuthContext',
    'AuthContextResolver',
    'MembershipView',
    'ConfigurationError',
    'DuplicateKeyError',
    'ErrorKind',
    'Failure',
    'InvalidPermissionKey',
    'Ok',
    'Result',
    'SchoolCoreError',
    'StoreError',
    'TransactionConflict',
    'RequestLoggerAdapter',
    'SchoolCoreFormatter',
    'get_request_logger',
    'redact_secrets',
    'safe_log_value',
    'safe_preview',
    'setup_logging',
    'PermissionKey',
    'PermissionRegistry',
    'Permissions',
    'SystemRoles',
    'can',
    'has_global_permission',
    'has_permission',
    'STATUS_BY_KIND',
    'to_response',
]
