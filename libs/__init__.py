"""Shared libraries for the answering service.

- common: settings and logging configuration
- caching: in-process caches and single-flight primitives
"""
