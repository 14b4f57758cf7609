"""
API v1 modules
"""

from . import admin, loadbalancers

__all__ = ["admin", "loadbalancers"]
