"""Order processing module: lifecycle, checkout intake, fulfillment handoff.

Submodules are imported explicitly (core.orders.status_service, ...) to keep
package import free of database dependencies.
"""
