"""
Pipeline orchestration: stage ordering, data quality reporting and run
bookkeeping.
"""
