from .config import Config, TestConfig, config_map, get_config

__all__ = ['Config', 'TestConfig', 'config_map', 'get_config']
