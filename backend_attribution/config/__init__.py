"""
Configuration: environment loading (.env) and typed settings.
"""
