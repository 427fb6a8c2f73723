# SPDX-License-Identifier: Apache-2.0

"""
Services package - infrastructure adapters attached to the Flask app.
"""
