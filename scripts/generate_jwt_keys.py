#!/usr/bin/env python3
# SPDX-License-Identifier: Apache-2.0
"""
Generate the RSA key pair used to sign access and refresh tokens.

Prints the keys as JWT_PRIVATE_KEY / JWT_PUBLIC_KEY environment lines so
that every API instance signs with the same pair.
"""

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


def generate_jwt_keys(key_size: int = 2048):
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)

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


if __name__ == "__main__":
    private_key, public_key = generate_jwt_keys()
    newline = "\\n"
    print(f'JWT_PRIVATE_KEY="{private_key.replace(chr(10), newline)}"')
    print(f'JWT_PUBLIC_KEY="{public_key.replace(chr(10), newline)}"')
