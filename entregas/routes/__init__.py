# SPDX-License-Identifier: Apache-2.0

"""
HTTP route blueprints.
"""

from .auth import auth_bp
from .profiles import profiles_bp
from .orders import orders_bp
from .ratings import ratings_bp
from .drivers import drivers_bp
from .withdrawals import withdrawals_bp
from .notifications import notifications_bp
from .shipping import shipping_bp
from .products import products_bp
from .coupons import coupons_bp
from .promotions import promotions_bp

ALL_BLUEPRINTS = [
    auth_bp,
    profiles_bp,
    orders_bp,
    ratings_bp,
    drivers_bp,
    withdrawals_bp,
    notifications_bp,
    shipping_bp,
    products_bp,
    coupons_bp,
    promotions_bp,
]
