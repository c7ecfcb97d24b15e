from driveconnector.core.config import ConfigError, ConnectorConfig

__all__ = ["ConnectorConfig", "ConfigError"]
