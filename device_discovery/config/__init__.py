"""
Configuration module for Device Discovery.
Provides loading and validation of scan tuning, device profiles, known
devices and scan targets.
"""

from .config_loader import ConfigLoader, ScanConfig
from .target_loader import TargetLoader

__all__ = ['ConfigLoader', 'ScanConfig', 'TargetLoader']
