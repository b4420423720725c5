"""
Jukebox Test Suite
"""
