"""
Properties Module

Property inventory: listings for sale or rent, with soft delete.
"""
