# =======================================================================================
# visitor_checkin/__init__.py - Package Initialization
# =======================================================================================
"""
Visitor Check-in System - Scan Decision Service

Registered visitors carry a barcode/QR code; staff scan it at the entrance
and the service decides whether to admit, records the scan and reports
first, repeat, duplicate and blocked attempts.
"""

__version__ = "1.0.0"
__author__ = "Visitor Check-in Team"
