"""
Data Safe target lifecycle operations.

Connector assignment, credential rotation and target housekeeping for
Data Safe targets, driven through the OCI CLI.
"""

__version__ = "0.15.0"
