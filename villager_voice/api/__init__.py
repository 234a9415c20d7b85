"""
HTTP boundary for the pipeline.
"""
