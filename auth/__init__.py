"""
auth — caller identity.

Provides:
  • Signed caller-token creation & verification
  • ``get_current_user_id`` FastAPI dependency
"""
