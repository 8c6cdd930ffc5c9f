"""MyAuth — user authentication service.

Registration with email verification, credential login, access/refresh
token issuance, refresh, logout/revocation, and password reset by email.
"""

__version__ = "0.1.0"
