"""Email domain - templates, send logs and the scheduled email runner"""

__all__ = []
