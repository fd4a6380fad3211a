"""
Loaders writing transformed records to the warehouse.
"""
