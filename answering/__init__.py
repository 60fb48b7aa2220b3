"""Hybrid answering pipeline.

Combines grounded document retrieval, a general-knowledge fallback and live
web augmentation into a single answer per question.
"""

__all__ = []
