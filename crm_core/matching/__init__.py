"""
Matching Module

Rule-based pairing of clients with compatible properties.
"""
