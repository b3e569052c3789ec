"""
Normalization and batching pipeline.
"""
