"""Authentication primitives.

Learn: The leaves of the auth stack live here:
1. password → bcrypt credential hashing/verification
2. tokens → signed, expiring JWTs, one secret per token class
3. ledger → the set of refresh tokens that are currently honored

Services in myauth.services compose these into login/refresh/logout
and the email verification and password reset workflows.
"""
