"""
Staging: raw copies of the source files the star schema is built from.
"""
