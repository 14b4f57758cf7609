"""
phoenixNAP load balancer IP broker
"""

__version__ = "1.0.0"
