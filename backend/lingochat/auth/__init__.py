"""Authentication module.

Verifies bearer credentials for both the realtime gateway handshake and the
REST routers. Token issuance lives in the account service.

Services:
    - CredentialVerifier: HS256 JWT verification yielding a user id.
"""
