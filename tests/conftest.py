# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.

Endpoint tests run the real application with mocked MongoDB, Redis, AMQP
and ViaCEP services. Tokens are signed by a real AuthService.
"""

import os
import pytest
from typing import Any, Dict, Optional
from unittest.mock import MagicMock

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['OTEL_ENABLED'] = 'false'

from entregas.app import create_app
from entregas.models.base import to_document
from entregas.models.entities import DeliveryConfig, Order, OrderItem, Product, Profile, StatusChange
from entregas.models.enums import OrderStatus, UserRole
from entregas.services.amqp import PublishResult
from entregas.services.auth import AuthService
from entregas.services.mongodb import PaginationResult, PRODUCTS, PROFILES

TEST_PASSWORD = "Senha123"
VALID_CPF = "52998224725"
VALID_CNPJ = "11222333000181"
WATER_PRODUCT_ID = "64b0000000000000000000a1"


def stored(entity) -> Dict[str, Any]:
    """Document as MongoDBService returns it: camelCase keys, string ``id``."""
    document = to_document(entity)
    document["id"] = str(document.pop("_id"))
    return document


@pytest.fixture(scope="session")
def auth_service():
    """Auth service with a generated key pair."""
    return AuthService()


@pytest.fixture(scope="session")
def password_hash(auth_service):
    return auth_service.hash_password(TEST_PASSWORD)


@pytest.fixture
def mongodb_service():
    """
    MongoDB mock backed by a dict of documents keyed by (collection, id).

    ``find_one`` reads from ``mongodb_service.documents``; other lookups
    return empty results unless a test configures them.
    """
    service = MagicMock()
    service.documents = {}

    def find_one(collection, doc_id, include_deleted=False):
        document = service.documents.get((collection, doc_id))
        return dict(document) if document else None

    def create(collection, document, user_id):
        return str(document["_id"])

    service.find_one.side_effect = find_one
    service.create.side_effect = create
    service.find_one_by.return_value = None
    service.find.return_value = []
    service.update.return_value = True
    service.update_many.return_value = 1
    service.increment.return_value = 1
    service.soft_delete.return_value = True
    service.count.return_value = 0
    service.paginate.return_value = PaginationResult([], 0, 1, 20)
    service.health_check.return_value = {"status": "healthy", "version": "7.0.0", "database": "entregas_test"}
    return service


@pytest.fixture
def store_document(mongodb_service):
    """Put an entity where ``find_one`` will find it."""
    def _store(collection: str, entity) -> Dict[str, Any]:
        document = stored(entity)
        mongodb_service.documents[(collection, entity.id)] = document
        return document
    return _store


@pytest.fixture
def redis_service():
    service = MagicMock()
    service.is_token_blocked.return_value = False
    service.block_token.return_value = True
    service.get_cached_driver_stats.return_value = None
    service.get_cached_unread_count.return_value = None
    service.health_check.return_value = {"status": "healthy", "response_time_ms": 1.0}
    return service


@pytest.fixture
def amqp_service():
    service = MagicMock()
    service.publish_push.return_value = PublishResult(
        success=True,
        correlation_id="corr-123",
        exchange="push.notifications",
        routing_key="push.client.user"
    )
    service.health_check.return_value = True
    return service


@pytest.fixture
def cep_service():
    return MagicMock()


@pytest.fixture
def app(mongodb_service, redis_service, amqp_service, cep_service, auth_service):
    """Application wired to the mocked services."""
    application = create_app(
        {
            'TESTING': True,
            'ENVIRONMENT': 'test',
            'OTEL_ENABLED': False,
            'BASE_URL': 'https://api.example.com',
            'PICKUP_ADDRESS': 'Rua do Depósito, 100 - São Paulo/SP',
            'WITHDRAWAL_MIN_AMOUNT': 10.0,
        },
        services={
            'mongodb_service': mongodb_service,
            'redis_service': redis_service,
            'amqp_service': amqp_service,
            'auth_service': auth_service,
            'cep_service': cep_service,
        }
    )
    return application


@pytest.fixture
def client(app):
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def client_profile(password_hash, store_document):
    profile = Profile(
        email="maria@example.com",
        password_hash=password_hash,
        full_name="Maria Silva",
        role=UserRole.CLIENT,
        phone="(11) 98765-4321",
        document="529.982.247-25",
        document_type="cpf",
        address="Rua das Flores, 123",
        city="São Paulo",
        state="SP",
        cep="01310-100",
        is_approved=True
    )
    store_document(PROFILES, profile)
    return profile


@pytest.fixture
def driver_profile(password_hash, store_document):
    profile = Profile(
        email="joao@example.com",
        password_hash=password_hash,
        full_name="João Souza",
        role=UserRole.DRIVER,
        phone="(11) 91234-5678",
        document="529.982.247-25",
        document_type="cpf",
        cnh_number="12345678901",
        vehicle_type="motocicleta",
        vehicle_plate="ABC1D23",
        is_approved=True
    )
    store_document(PROFILES, profile)
    return profile


@pytest.fixture
def pending_driver_profile(password_hash, store_document):
    profile = Profile(
        email="pedro@example.com",
        password_hash=password_hash,
        full_name="Pedro Lima",
        role=UserRole.DRIVER,
        cnh_number="10987654321",
        vehicle_type="bicicleta",
        is_approved=False
    )
    store_document(PROFILES, profile)
    return profile


@pytest.fixture
def wholesale_profile(password_hash, store_document):
    profile = Profile(
        email="compras@mercadinho.com.br",
        password_hash=password_hash,
        full_name="Carlos Pereira",
        company_name="Mercadinho Bom Preço",
        role=UserRole.WHOLESALE,
        phone="(11) 3333-4444",
        document="11.222.333/0001-81",
        document_type="cnpj",
        is_approved=True
    )
    store_document(PROFILES, profile)
    return profile


@pytest.fixture
def admin_profile(password_hash, store_document):
    profile = Profile(
        email="admin@example.com",
        password_hash=password_hash,
        full_name="Ana Administradora",
        role=UserRole.ADMIN,
        is_approved=True
    )
    store_document(PROFILES, profile)
    return profile


@pytest.fixture
def headers_for(auth_service):
    """Build request headers carrying a fresh access token for a profile."""
    def _headers(profile: Profile) -> Dict[str, str]:
        tokens = auth_service.generate_tokens(profile)
        return {
            'Authorization': f"Bearer {tokens['access_token']}",
            'Content-Type': 'application/json'
        }
    return _headers


@pytest.fixture
def order_factory():
    """Build orders in any status with consistent totals."""
    def _order(
        client_id: str,
        status: str = OrderStatus.PENDING.value,
        driver_id: Optional[str] = None,
        delivery_fee: float = 10.0,
        **overrides
    ) -> Order:
        items = [OrderItem(product_id=WATER_PRODUCT_ID, name="Água mineral 20L", price=15.0, quantity=2)]
        fields = dict(
            client_id=client_id,
            driver_id=driver_id,
            items=items,
            subtotal=30.0,
            delivery_fee=delivery_fee,
            total=round(30.0 + delivery_fee, 2),
            delivery_address="Rua das Flores, 123",
            delivery_cep="01310-100",
            delivery_city="São Paulo",
            delivery_state="SP",
            region="centro",
            distance_km=3.0,
            status=status,
            status_history=[StatusChange(status=OrderStatus.PENDING, changed_by=client_id)],
            created_by=client_id,
            updated_by=client_id
        )
        fields.update(overrides)
        return Order(**fields)
    return _order


@pytest.fixture
def delivery_config():
    return DeliveryConfig(region="centro", base_fee=5.0, per_km_fee=1.5, max_distance_km=10.0)


@pytest.fixture
def gas_product(store_document):
    product = Product(name="Botijão de gás 13kg", category="Gás", price=110.0, stock=20)
    store_document(PRODUCTS, product)
    return product


@pytest.fixture
def water_product(store_document):
    product = Product(id=WATER_PRODUCT_ID, name="Água mineral 20L", category="Água", price=12.5, stock=50)
    store_document(PRODUCTS, product)
    return product
