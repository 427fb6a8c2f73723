#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Create an admin profile.

Admin accounts cannot sign up through the API, so operators seed them:

    ADMIN_EMAIL=ops@example.com ADMIN_PASSWORD=... ADMIN_NAME="Equipe Ops" \
        python scripts/seed_admin.py
"""

import logging
import os
import sys

from pymongo.errors import PyMongoError

from entregas.models.base import to_document
from entregas.models.entities import Profile
from entregas.models.enums import UserRole
from entregas.services.auth import AuthService
from entregas.services.mongodb import PROFILES, get_mongodb_service, close_mongodb_connection

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def build_admin(email: str, password: str, full_name: str, auth_service: AuthService) -> Profile:
    return Profile(
        email=email,
        password_hash=auth_service.hash_password(password),
        full_name=full_name,
        role=UserRole.ADMIN,
        is_approved=True,
        created_by="system",
        updated_by="system"
    )


def main():
    email = os.getenv('ADMIN_EMAIL')
    password = os.getenv('ADMIN_PASSWORD')
    full_name = os.getenv('ADMIN_NAME', 'Administrador')

    if not email or not password:
        logger.error("ADMIN_EMAIL and ADMIN_PASSWORD are required")
        sys.exit(1)

    mongodb_service = get_mongodb_service()
    try:
        if mongodb_service.find_one_by(PROFILES, {"email": email.lower()}, include_deleted=True):
            logger.info(f"Profile {email} already exists, nothing to do")
            return

        admin = build_admin(email, password, full_name, AuthService())
        mongodb_service.create(PROFILES, to_document(admin), "system")
        logger.info(f"Admin profile created: {admin.email} ({admin.id})")

    except PyMongoError as e:
        logger.error(f"Failed to seed admin: {e}")
        sys.exit(1)
    finally:
        close_mongodb_connection()


if __name__ == "__main__":
    main()
