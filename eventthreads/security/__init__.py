"""Login and caller resolution.

Key Components:
- AuthenticationManager: username login, password-gated admin login,
  and ``UserContext`` lookup for incoming requests
"""

from .auth import AuthenticationManager

__all__ = ["AuthenticationManager"]
