from .loader import ConfigError, load_config, load_yaml_config, parse_config
from .models import AppConfig

__all__ = ["AppConfig", "ConfigError", "load_config", "load_yaml_config", "parse_config"]
