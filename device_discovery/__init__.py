"""
Device Discovery Module

A Python module for finding live hosts on IPv4 networks and fingerprinting
them over SNMP with vendor/community fallback and known-device classification.
"""

__version__ = "1.0.0"
__author__ = "Device Discovery Team"
