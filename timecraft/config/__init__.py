"""
Configuration loading and packaged lexicon data.
"""
