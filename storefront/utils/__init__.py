"""
Utility modules for the storefront backend
"""
from .config_loader import StorefrontSettings, load_settings
from .rate_limiter import RateLimiter

__all__ = [
    'StorefrontSettings',
    'load_settings',
    'RateLimiter',
]
