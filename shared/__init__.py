"""
Shared configuration, logging and database plumbing.
"""
