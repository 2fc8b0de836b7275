"""
Clients Module

Client records and the desired-property criteria used by matching.
"""
