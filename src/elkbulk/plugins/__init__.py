"""
Sinks and filters for elkbulk.
"""
