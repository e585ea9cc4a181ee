"""
REST API: routes, middleware, dependencies and error mapping.
"""
