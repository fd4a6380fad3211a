"""
Sales star-schema ETL package.

This package stages flat-file sales records and reshapes them into a
dimensional model of one sales fact table and five dimension tables.
"""
