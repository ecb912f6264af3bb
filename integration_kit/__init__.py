"""
Integration Kit

Uniform async clients for third-party vendors (payments, point of sale, CRM,
accounting, messaging and backend-as-a-service) built on one shared
integration framework.
"""

__version__ = "0.1.0"
