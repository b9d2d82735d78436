"""
Carebook Appointment Service

A FastAPI service for booking appointments between clients and clinicians,
with token authentication, role-based authorization and an appointment
lifecycle that never double-books a clinician.
"""

__version__ = "1.0.0"
