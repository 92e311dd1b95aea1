"""Configuration module for the auth gateway."""
from .settings import AppConfig, load_settings

__all__ = ["AppConfig", "load_settings"]
