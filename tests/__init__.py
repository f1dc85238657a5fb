# StockScan Test Suite
#
# This package contains:
# - API tests (pytest + httpx)
# - Stress/load tests (Locust)
#
# Run with: python -m tests.run [smoke|full|api|stress]
