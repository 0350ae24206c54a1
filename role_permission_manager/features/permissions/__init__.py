"""
Role and permission feature module.

Implements hierarchical Role-Based Access Control (RBAC) with scoped,
wildcard-capable permissions and a process-level resolution cache.
"""
