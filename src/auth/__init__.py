"""Authentication module.

Provides:
- JWT access token issue and validation
- Authenticated principal (user id and role)
- Role hierarchy and admin checks
"""
