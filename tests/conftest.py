"""Shared fixtures: a small Java code graph served from memory."""

import pytest

from codematch.index.loader import StaticEntitySource
from codematch.index.registry import EntityRegistry

CLASS_ROWS = [
    {"id": "c1", "name": "PaymentService", "fullName": "com.shop.payment.PaymentService",
     "packageName": "com.shop.payment", "labels": ["Class"]},
    {"id": "c2", "name": "PaymentController", "fullName": "com.shop.payment.PaymentController",
     "packageName": "com.shop.payment", "labels": ["Class"]},
    {"id": "c3", "name": "UserService", "fullName": "com.shop.user.UserService",
     "packageName": "com.shop.user", "labels": ["Class"]},
    {"id": "c4", "name": "UserRepository", "fullName": "com.shop.user.UserRepository",
     "packageName": "com.shop.user", "labels": ["Class", "Interface"]},
    {"id": "c5", "name": "OrderManager", "fullName": "com.shop.order.OrderManager",
     "packageName": "com.shop.order", "labels": ["Class"]},
    {"id": "c6", "name": "AbstractOrderHandler", "fullName": "com.shop.order.AbstractOrderHandler",
     "packageName": "com.shop.order", "labels": ["Class"], "modifiers": ["public", "abstract"]},
]

METHOD_ROWS = [
    {"id": "m1", "name": "processPayment", "signature": "void processPayment(Payment)",
     "className": "PaymentService", "packageName": "com.shop.payment", "returnType": "void"},
    {"id": "m2", "name": "validatePayment", "signature": "boolean validatePayment(Payment)",
     "className": "PaymentService", "packageName": "com.shop.payment", "returnType": "boolean"},
    {"id": "m3", "name": "getUserName", "signature": "String getUserName()",
     "className": "UserService", "packageName": "com.shop.user", "returnType": "String"},
    {"id": "m4", "name": "findById", "signature": "User findById(long)",
     "className": "UserRepository", "packageName": "com.shop.user", "returnType": "User"},
    {"id": "m5", "name": "createOrder", "signature": "Order createOrder(Cart)",
     "className": "OrderManager", "packageName": "com.shop.order", "returnType": "Order"},
]


@pytest.fixture
def source():
    """In-memory entity source with packages derived from the class rows."""
    return StaticEntitySource(classes=CLASS_ROWS, methods=METHOD_ROWS)


@pytest.fixture
def registry(source):
    """Registry loaded from the sample graph."""
    registry = EntityRegistry(source=source)
    assert registry.refresh()
    return registry
