"""
Services package for awsreconcile.

This package contains the reconciliation services:
- Provisioning: lifecycle reconcilers for AWS resources
"""

__all__ = []
