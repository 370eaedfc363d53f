"""
Core utilities: exceptions and cross-cutting concerns shared by the
registry, matcher, writer and sweeper.
"""
