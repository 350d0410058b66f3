from statter.services.registry import (
    ConfigurationError,
    Header,
    ServiceDefinition,
    ServiceRegistry,
)

__all__ = [
    "ConfigurationError",
    "Header",
    "ServiceDefinition",
    "ServiceRegistry",
]
