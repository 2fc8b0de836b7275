"""
Dashboard Module
"""
