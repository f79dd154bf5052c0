"""
chat-recall: answers questions about a group chat's history.

Hybrid message/window retrieval, confidence-gated context assembly and
grounded two-stage answer generation.
"""

__version__ = "1.0.0"
