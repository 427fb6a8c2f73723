# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Entregas API - delivery management backend for the client, wholesale,
driver and admin portals.
"""

__version__ = "1.0.0"
