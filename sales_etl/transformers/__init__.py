"""
Star-schema transformers: dimension projectors, the time dimension and
the sales fact builder.
"""
