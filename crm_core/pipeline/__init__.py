"""
Pipeline Module

Sales pipeline stages and the kanban board of clients.
"""
