"""
Shared Kernel Module
====================

Infrastructure shared by every bounded context (tickets, playbooks,
retrieval): structured logging and HTTP middleware.

Business logic from the bounded contexts does not belong here.
"""
