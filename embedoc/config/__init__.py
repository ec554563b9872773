"""
Config module
"""

from .config import BaseConfig, MapperConfig
