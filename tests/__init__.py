"""
Test suite for the price import backend.
"""
