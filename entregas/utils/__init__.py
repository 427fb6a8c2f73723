# SPDX-License-Identifier: Apache-2.0

"""
Request parsing and entity loading helpers shared by the route modules.
"""
