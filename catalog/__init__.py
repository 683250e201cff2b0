"""catalog/ -- Category directory and product inventory ledger for Storefront.

Layer rule: catalog/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or auth/.
"""
