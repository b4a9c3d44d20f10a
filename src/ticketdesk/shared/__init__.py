"""
Shared Kernel Module
====================

Generic infrastructure used by the SLA bounded context and the application
bootstrap. DO NOT add ticket or SLA business logic here.
"""
