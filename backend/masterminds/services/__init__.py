"""
MasterMinds Backend — Services Layer
=====================================

What:  Business logic between the routes (HTTP) and the storage adapter.
How:   Services take validated request schemas and identities, apply the
       rules and return storage records; routes shape those into responses.

Service Inventory:
    - credentials.py:          bcrypt hashing, JWT issue/verify/revoke,
                               failed-login tracking, password strength
    - auth_service.py:         register, login, refresh, logout, profile
    - application_service.py:  submit, list, get, update, withdraw,
                               status transitions
"""
