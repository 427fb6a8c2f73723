# SPDX-License-Identifier: Apache-2.0

"""
Authentication service for JWT token management and password hashing.

This module provides JWT token generation, validation, refresh, and password
hashing utilities using RS256 signing and bcrypt for secure authentication.
"""

import os
import uuid
import jwt
import bcrypt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Tuple, Callable
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from opentelemetry import trace
import logging

from ..models.entities import Profile
from ..domain.authorization import permissions_for_role

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when authentication fails."""
    pass


class TokenValidationError(Exception):
    """Raised when token validation fails."""
    pass


class AuthService:
    """
    JWT authentication service with RS256 signing and bcrypt password hashing.

    Access tokens carry the profile role, approval flag and the permissions of
    the role, so routes can authorize without a database round trip.
    """

    def __init__(self, private_key: Optional[str] = None, public_key: Optional[str] = None):
        """
        Initialize the authentication service.

        When neither key is given and the environment has none, a single
        development key pair is generated for both signing and verification.

        Args:
            private_key: RS256 private key for token signing (PEM format)
            public_key: RS256 public key for token verification (PEM format)
        """
        private_key = private_key or os.getenv("JWT_PRIVATE_KEY")
        public_key = public_key or os.getenv("JWT_PUBLIC_KEY")

        if not private_key or not public_key:
            logger.warning("No JWT key pair configured, generating development key pair")
            private_key, public_key = self._generate_dev_key_pair()

        self.private_key = private_key
        self.public_key = public_key
        self.algorithm = "RS256"
        self.access_token_expire_minutes = 15
        self.refresh_token_expire_days = 7

    def _generate_dev_key_pair(self) -> Tuple[str, str]:
        """Generate RSA key pair for development use."""
        private_key = rsa.generate_private_key(
            public_exponent=65537,
            key_size=2048
        )

        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        ).decode('utf-8')

        public_pem = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        ).decode('utf-8')

        return private_pem, public_pem

    def hash_password(self, password: str) -> str:
        """
        Hash a password using bcrypt with salt.

        Args:
            password: Plain text password to hash

        Returns:
            Hashed password string
        """
        with tracer.start_as_current_span("auth.hash_password") as span:
            span.set_attribute("auth.operation", "hash_password")

            salt = bcrypt.gensalt(rounds=12)
            hashed = bcrypt.hashpw(password.encode('utf-8'), salt)

            logger.debug("Password hashed successfully")
            return hashed.decode('utf-8')

    def verify_password(self, password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash.

        Returns:
            True if password matches, False otherwise
        """
        with tracer.start_as_current_span("auth.verify_password") as span:
            span.set_attribute("auth.operation", "verify_password")

            try:
                result = bcrypt.checkpw(
                    password.encode('utf-8'),
                    hashed_password.encode('utf-8')
                )

                span.set_attribute("auth.verification_result", "success" if result else "failed")
                logger.debug(f"Password verification: {'success' if result else 'failed'}")

                return result
            except ValueError as e:
                span.set_attribute("auth.verification_result", "error")
                logger.error(f"Password verification error: {str(e)}")
                return False

    def _access_payload(self, profile: Profile, now: datetime) -> Dict[str, Any]:
        return {
            "sub": profile.id,
            "role": profile.role,
            "email": profile.email,
            "name": profile.full_name,
            "is_approved": profile.is_approved,
            "permissions": permissions_for_role(profile.role),
            "jti": str(uuid.uuid4()),
            "iat": now,
            "exp": now + timedelta(minutes=self.access_token_expire_minutes),
            "type": "access"
        }

    def generate_tokens(self, profile: Profile) -> Dict[str, Any]:
        """
        Generate access and refresh tokens for a profile.

        Args:
            profile: Profile to generate tokens for

        Returns:
            Dictionary containing access_token, refresh_token, and metadata
        """
        with tracer.start_as_current_span("auth.generate_tokens") as span:
            span.set_attributes({
                "auth.operation": "generate_tokens",
                "user.id": profile.id,
                "user.role": profile.role
            })

            now = datetime.now(timezone.utc)
            access_payload = self._access_payload(profile, now)
            access_exp = access_payload["exp"]
            refresh_exp = now + timedelta(days=self.refresh_token_expire_days)

            refresh_payload = {
                "sub": profile.id,
                "jti": str(uuid.uuid4()),
                "iat": now,
                "exp": refresh_exp,
                "type": "refresh"
            }

            try:
                access_token = jwt.encode(access_payload, self.private_key, algorithm=self.algorithm)
                refresh_token = jwt.encode(refresh_payload, self.private_key, algorithm=self.algorithm)
            except (jwt.PyJWTError, ValueError, TypeError) as e:
                span.set_attribute("auth.tokens_generated", "error")
                logger.error(f"Token generation failed: {str(e)}")
                raise AuthenticationError(f"Failed to generate tokens: {str(e)}")

            span.set_attribute("auth.tokens_generated", "success")

            logger.info(
                "JWT tokens generated successfully",
                extra={
                    "user_id": profile.id,
                    "role": profile.role,
                    "access_expires_at": access_exp.isoformat(),
                    "refresh_expires_at": refresh_exp.isoformat()
                }
            )

            return {
                "access_token": access_token,
                "refresh_token": refresh_token,
                "token_type": "Bearer",
                "expires_in": self.access_token_expire_minutes * 60,
                "access_expires_at": access_exp.isoformat(),
                "refresh_expires_at": refresh_exp.isoformat()
            }

    def validate_token(self, token: str, token_type: str = "access") -> Dict[str, Any]:
        """
        Validate and decode a JWT token.

        Args:
            token: JWT token string to validate
            token_type: Expected token type ("access" or "refresh")

        Returns:
            Decoded token payload

        Raises:
            TokenValidationError: If token is invalid or expired
        """
        with tracer.start_as_current_span("auth.validate_token") as span:
            span.set_attributes({
                "auth.operation": "validate_token",
                "auth.token_type": token_type
            })

            try:
                payload = jwt.decode(
                    token,
                    self.public_key,
                    algorithms=[self.algorithm],
                    options={"verify_exp": True}
                )
            except jwt.ExpiredSignatureError:
                span.set_attribute("auth.validation_result", "expired")
                logger.warning("Token validation failed: token expired")
                raise TokenValidationError("Token has expired")
            except jwt.InvalidTokenError as e:
                span.set_attribute("auth.validation_result", "invalid")
                logger.warning(f"Token validation failed: {str(e)}")
                raise TokenValidationError(f"Invalid token: {str(e)}")

            if payload.get("type") != token_type:
                span.set_attribute("auth.validation_result", "wrong_type")
                raise TokenValidationError(f"Invalid token type. Expected {token_type}")

            span.set_attributes({
                "auth.validation_result": "success",
                "user.id": payload.get("sub")
            })

            logger.debug(
                "Token validated successfully",
                extra={"user_id": payload.get("sub"), "token_type": token_type}
            )

            return payload

    def refresh_access_token(
        self,
        refresh_token: str,
        load_profile: Callable[[str], Optional[Profile]]
    ) -> Dict[str, Any]:
        """
        Generate a new access token using a valid refresh token.

        The profile is reloaded so role and approval changes made since login
        are reflected in the new token.

        Args:
            refresh_token: Valid refresh token
            load_profile: Callable returning the current profile for an ID

        Returns:
            New access token and metadata

        Raises:
            TokenValidationError: If refresh token is invalid
            AuthenticationError: If the profile no longer exists
        """
        with tracer.start_as_current_span("auth.refresh_access_token") as span:
            span.set_attribute("auth.operation", "refresh_access_token")

            refresh_payload = self.validate_token(refresh_token, "refresh")

            profile = load_profile(refresh_payload["sub"])
            if profile is None:
                span.set_attribute("auth.refresh_result", "unknown_user")
                raise AuthenticationError("User no longer exists")

            now = datetime.now(timezone.utc)
            access_payload = self._access_payload(profile, now)

            try:
                access_token = jwt.encode(access_payload, self.private_key, algorithm=self.algorithm)
            except (jwt.PyJWTError, ValueError, TypeError) as e:
                span.set_attribute("auth.refresh_result", "error")
                logger.error(f"Token refresh failed: {str(e)}")
                raise AuthenticationError(f"Failed to refresh token: {str(e)}")

            span.set_attribute("auth.refresh_result", "success")

            logger.info(
                "Access token refreshed successfully",
                extra={
                    "user_id": profile.id,
                    "new_expires_at": access_payload["exp"].isoformat()
                }
            )

            return {
                "access_token": access_token,
                "token_type": "Bearer",
                "expires_in": self.access_token_expire_minutes * 60,
                "expires_at": access_payload["exp"].isoformat()
            }

    def extract_token_id(self, token: str) -> str:
        """
        Extract a unique identifier from a token for blocklist purposes.

        Args:
            token: JWT token string

        Returns:
            Unique token identifier
        """
        try:
            payload = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError as e:
            logger.error(f"Failed to extract token ID: {str(e)}")
            raise TokenValidationError(f"Invalid token format: {str(e)}")

        if payload.get("jti"):
            return payload["jti"]
        return f"{payload.get('sub')}:{payload.get('iat')}:{payload.get('type')}"

    def token_ttl_seconds(self, payload: Dict[str, Any]) -> int:
        """Seconds until ``payload`` expires, never negative."""
        exp = payload.get("exp")
        if not exp:
            return 0
        remaining = int(exp - datetime.now(timezone.utc).timestamp())
        return max(remaining, 0)
