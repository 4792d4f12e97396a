"""
telestack — provisioning and reconciliation for the telehealth platform stack.
"""

__version__ = "0.1.0"
